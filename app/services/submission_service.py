# submission_service.py - Plugin submission pipeline
#
# Writes plugins/<id>/plugin.py, plugins/<id>/config.json and appends the
# plugin to the shared plugins.json index through the GitHub contents API.

import json
from datetime import datetime, timezone
from typing import Any, List, Optional, Tuple

import httpx
import structlog
import tenacity
from pydantic import ValidationError

from core.config import Settings
from metrics.metrics import get_metrics
from models.plugin_model import (
    PLUGIN_ID_PATTERN,
    REQUIRED_FIELDS,
    PluginConfig,
    PluginIndex,
    PluginIndexEntry,
    SubmissionRequest,
)
from services.github_contents import GitHubContentsClient
from utils.exceptions import (
    DuplicatePluginError,
    IndexConflictError,
    InvalidSubmissionError,
    UpstreamError,
)

logger = structlog.get_logger(__name__)


def parse_submission(data: Any) -> SubmissionRequest:
    """
    Validate a raw request body. Required fields are checked in declaration
    order and the first missing one is reported; then the id format; then
    the remaining field types.
    """
    if not isinstance(data, dict):
        raise InvalidSubmissionError("请求体必须是 JSON 对象")

    for field in REQUIRED_FIELDS:
        if not data.get(field):
            raise InvalidSubmissionError(f"缺少必填字段: {field}")

    plugin_id = data["id"]
    if not isinstance(plugin_id, str) or not PLUGIN_ID_PATTERN.fullmatch(plugin_id):
        raise InvalidSubmissionError("插件ID格式不正确")

    try:
        return SubmissionRequest(**data)
    except ValidationError as e:
        field = ".".join(str(p) for p in e.errors()[0]["loc"])
        raise InvalidSubmissionError(f"请求数据格式不正确: {field}")


def today_iso() -> str:
    return datetime.now(timezone.utc).strftime("%Y-%m-%d")


def dump_json(document: dict) -> bytes:
    return json.dumps(document, ensure_ascii=False, indent=2).encode("utf-8")


class SubmissionService:
    """Runs one submission against the configured repository."""

    def __init__(self, contents: GitHubContentsClient, settings: Settings):
        self.contents = contents
        self.settings = settings
        self.metrics = get_metrics()

    # =====================================
    # DOCUMENTS
    # =====================================
    def download_url(self, plugin_id: str) -> str:
        base = self.settings.raw_base_url.rstrip("/")
        return f"{base}/{self.settings.github_repo}/{self.settings.github_branch}/plugins/{plugin_id}"

    def build_documents(self, req: SubmissionRequest) -> Tuple[PluginConfig, PluginIndexEntry]:
        config = PluginConfig.from_submission(req)
        entry = PluginIndexEntry.from_config(config, self.download_url(req.id))
        return config, entry

    # =====================================
    # PIPELINE
    # =====================================
    async def submit(self, req: SubmissionRequest) -> str:
        """
        Persist a submission and return the success message.

        In "strict" order the index is read and checked for the id before
        anything is written. "legacy" order writes the plugin files first and
        only then discovers a duplicate id, leaving those files behind unless
        rollback is enabled.
        """
        config, entry = self.build_documents(req)
        legacy = self.settings.submit_write_order == "legacy"
        log = logger.bind(plugin_id=req.id, write_order=self.settings.submit_write_order)
        written: List[Tuple[str, Optional[str]]] = []

        try:
            if not legacy:
                index, sha = await self.read_index()
                self.ensure_unique(index, req.id)

            await self._write_file(
                f"plugins/{req.id}/plugin.py",
                req.code.encode("utf-8"),
                f"Add plugin: {req.cn_name}",
                written,
            )
            await self._write_file(
                f"plugins/{req.id}/config.json",
                dump_json(config.model_dump()),
                f"Add config for: {req.cn_name}",
                written,
            )

            if legacy:
                index, sha = await self.read_index()
                self.ensure_unique(index, req.id)

            await self.append_to_index(req, entry, index, sha)
        except Exception as e:
            if written and self.settings.submit_rollback:
                await self.rollback(req, written)
            log.warning("submission_aborted", error=str(e), files_written=len(written))
            raise

        log.info("submission_completed", cn_name=req.cn_name)
        return f"插件 {req.cn_name} 提交成功！"

    async def _write_file(self, path: str, content: bytes, message: str, written: list):
        res = await self.contents.put_file(path, content, message)
        name = path.rsplit("/", 1)[-1]
        if not res.is_success:
            logger.error("github_write_failed", path=path, status_code=res.status_code, body=res.text)
            raise UpstreamError(f"上传 {name} 失败: {res.status_code}", res.status_code, res.text)

        sha = (res.json().get("content") or {}).get("sha")
        written.append((path, sha))

    # =====================================
    # INDEX
    # =====================================
    async def read_index(self) -> Tuple[PluginIndex, Optional[str]]:
        """Current index and its sha; an empty index with no sha if it can't be read."""
        remote = await self.contents.get_file(self.settings.index_path)
        if remote is None:
            return PluginIndex(), None
        return PluginIndex(**json.loads(remote.text())), remote.sha

    @staticmethod
    def ensure_unique(index: PluginIndex, plugin_id: str):
        if index.has_plugin(plugin_id):
            raise DuplicatePluginError("该插件ID已存在")

    async def append_to_index(self, req: SubmissionRequest, entry: PluginIndexEntry,
                              index: PluginIndex, sha: Optional[str]):
        """
        Compare-and-swap the index. A sha conflict means someone else wrote
        it since we read it, so re-read, re-check the id and try again.
        """
        wait = self.settings.index_retry_wait
        retrying = tenacity.AsyncRetrying(
            stop=tenacity.stop_after_attempt(max(1, self.settings.index_max_retries)),
            wait=tenacity.wait_exponential(multiplier=wait, max=wait * 8),
            retry=tenacity.retry_if_exception_type(IndexConflictError),
            before_sleep=self._on_conflict,
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                if attempt.retry_state.attempt_number > 1:
                    index, sha = await self.read_index()
                    self.ensure_unique(index, req.id)
                await self._put_index(req, entry, index, sha)

    async def _put_index(self, req: SubmissionRequest, entry: PluginIndexEntry,
                         index: PluginIndex, sha: Optional[str]):
        index.append(entry, today_iso())
        path = self.settings.index_path
        res = await self.contents.put_file(path, dump_json(index.model_dump()),
                                           f"Add plugin to list: {req.cn_name}", sha=sha)
        if res.is_success:
            return

        name = path.rsplit("/", 1)[-1]
        if self._is_conflict(res):
            raise IndexConflictError(f"更新 {name} 失败: {res.status_code}", res.status_code, res.text)
        logger.error("github_write_failed", path=path, status_code=res.status_code, body=res.text)
        raise UpstreamError(f"更新 {name} 失败: {res.status_code}", res.status_code, res.text)

    @staticmethod
    def _is_conflict(res: httpx.Response) -> bool:
        # 409: sha mismatch. 422 mentioning sha: the file appeared after we
        # read it as missing, so no sha was sent.
        return res.status_code == 409 or (res.status_code == 422 and "sha" in res.text)

    def _on_conflict(self, retry_state: tenacity.RetryCallState):
        self.metrics.record_index_conflict()
        logger.warning("index_conflict_retry", attempt=retry_state.attempt_number,
                       path=self.settings.index_path)

    # =====================================
    # COMPENSATION
    # =====================================
    async def rollback(self, req: SubmissionRequest, written: List[Tuple[str, Optional[str]]]):
        """Delete files this submission created, newest first."""
        for path, sha in reversed(written):
            if not sha:
                logger.error("rollback_skipped", path=path, reason="missing sha")
                self.metrics.record_rollback("skipped")
                continue
            try:
                res = await self.contents.delete_file(path, sha, f"Revert plugin: {req.cn_name}")
            except httpx.HTTPError as e:
                logger.error("rollback_failed", path=path, error=str(e))
                self.metrics.record_rollback("failed")
                continue

            if res.is_success:
                logger.info("rollback_deleted", path=path)
                self.metrics.record_rollback("deleted")
            else:
                logger.error("rollback_failed", path=path, status_code=res.status_code, body=res.text)
                self.metrics.record_rollback("failed")
