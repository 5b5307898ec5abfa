# tests/test_plugin_model.py - Submission parsing and derived documents

import pytest

from models.plugin_model import (
    DEFAULT_CATEGORY,
    DEFAULT_CHANGELOG,
    PluginConfig,
    PluginIndex,
    PluginIndexEntry,
    SubmissionRequest,
)
from services.submission_service import parse_submission
from utils.exceptions import InvalidSubmissionError


class TestParseSubmission:
    """Required fields, id format and field types"""

    @pytest.mark.parametrize("field", ["id", "cn_name", "author", "description", "code"])
    def test_missing_required_field(self, valid_submission, field):
        data = dict(valid_submission)
        del data[field]

        with pytest.raises(InvalidSubmissionError) as exc:
            parse_submission(data)

        assert str(exc.value) == f"缺少必填字段: {field}"
        assert exc.value.status_code == 400

    @pytest.mark.parametrize("value", ["", 0, None, False])
    def test_falsy_required_value_is_missing(self, valid_submission, value):
        data = dict(valid_submission, author=value)

        with pytest.raises(InvalidSubmissionError, match="缺少必填字段: author"):
            parse_submission(data)

    def test_first_missing_field_reported(self, valid_submission):
        data = dict(valid_submission, cn_name="", code="")

        with pytest.raises(InvalidSubmissionError, match="缺少必填字段: cn_name"):
            parse_submission(data)

    @pytest.mark.parametrize("plugin_id", ["Abc", "1abc", "ab-c", "_abc", "abc ", "abc\n", "ab.c", "中文"])
    def test_bad_id_format(self, valid_submission, plugin_id):
        with pytest.raises(InvalidSubmissionError, match="插件ID格式不正确"):
            parse_submission(dict(valid_submission, id=plugin_id))

    def test_non_string_id(self, valid_submission):
        with pytest.raises(InvalidSubmissionError, match="插件ID格式不正确"):
            parse_submission(dict(valid_submission, id=123))

    @pytest.mark.parametrize("plugin_id", ["abc", "a1_b2", "a", "z_9"])
    def test_good_id_format(self, valid_submission, plugin_id):
        assert parse_submission(dict(valid_submission, id=plugin_id)).id == plugin_id

    def test_wrong_field_type(self, valid_submission):
        with pytest.raises(InvalidSubmissionError, match="请求数据格式不正确: commands"):
            parse_submission(dict(valid_submission, commands="not-a-list"))

    def test_body_must_be_object(self):
        with pytest.raises(InvalidSubmissionError, match="请求体必须是 JSON 对象"):
            parse_submission(["id", "newplug"])

    def test_unknown_keys_ignored(self, valid_submission):
        req = parse_submission(dict(valid_submission, extra="ignored"))
        assert not hasattr(req, "extra")


class TestDerivedDocuments:
    """Defaults applied when building config.json and the index entry"""

    def test_defaults(self, valid_submission):
        config = PluginConfig.from_submission(SubmissionRequest(**valid_submission))

        assert config.id == "newplug"
        assert config.name == "newplug"
        assert config.version == "1.0.0"
        assert config.category == DEFAULT_CATEGORY == "工具"
        assert config.changelog == DEFAULT_CHANGELOG == "v1.0.0 - 初始版本"
        assert config.full_description == valid_submission["description"]
        assert config.keywords == []
        assert config.triggers == []
        assert config.commands == []
        assert config.features == []
        assert config.usage == ""
        assert config.notes == ""
        assert config.featured is False

    def test_empty_optional_values_use_defaults(self, valid_submission):
        req = SubmissionRequest(**valid_submission, version="", category="", changelog="", commands=[])
        config = PluginConfig.from_submission(req)

        assert config.version == "1.0.0"
        assert config.category == "工具"
        assert config.changelog == "v1.0.0 - 初始版本"

    def test_optional_values_carried(self, valid_submission):
        req = SubmissionRequest(
            **valid_submission,
            version="2.1.0",
            full_description="long text",
            category="娱乐",
            commands=["/roll", "/dice"],
            features=["random"],
            usage="/roll 6",
            changelog="v2.1.0 - dice",
            notes="beta",
        )
        config = PluginConfig.from_submission(req)

        assert config.version == "2.1.0"
        assert config.full_description == "long text"
        assert config.category == "娱乐"
        assert config.commands == ["/roll", "/dice"]
        assert config.triggers == ["/roll", "/dice"]
        assert config.features == ["random"]
        assert config.usage == "/roll 6"
        assert config.notes == "beta"

    def test_index_entry_extends_config(self, valid_submission):
        config = PluginConfig.from_submission(SubmissionRequest(**valid_submission))
        entry = PluginIndexEntry.from_config(config, "https://raw.example/acme/plugins/main/plugins/newplug")
        data = entry.model_dump()

        assert {k: data[k] for k in config.model_dump()} == config.model_dump()
        assert data["downloads"] == 0
        assert data["rating"] == 5.0
        assert data["featured"] is False
        assert data["download_url"].endswith("/plugins/newplug")


class TestPluginIndex:

    def test_empty_index(self):
        index = PluginIndex()
        assert index.model_dump() == {"version": "1.0.0", "last_updated": "", "plugins": []}

    def test_append_and_lookup(self, valid_submission):
        config = PluginConfig.from_submission(SubmissionRequest(**valid_submission))
        index = PluginIndex(plugins=[{"id": "old", "downloads": 42}])

        index.append(PluginIndexEntry.from_config(config, "url"), "2026-10-16")

        assert index.ids() == ["old", "newplug"]
        assert index.has_plugin("newplug")
        assert index.get_plugin("old") == {"id": "old", "downloads": 42}
        assert index.get_plugin("missing") is None
        assert index.last_updated == "2026-10-16"

    def test_unknown_keys_survive(self):
        index = PluginIndex(version="2.0.0", plugins=[], maintainer="someone")
        assert index.model_dump()["maintainer"] == "someone"
