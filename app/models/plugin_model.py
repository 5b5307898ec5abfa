import re
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

PLUGIN_ID_PATTERN = re.compile(r"^[a-z][a-z0-9_]*$")
REQUIRED_FIELDS = ("id", "cn_name", "author", "description", "code")

DEFAULT_VERSION = "1.0.0"
DEFAULT_CATEGORY = "工具"
DEFAULT_CHANGELOG = "v1.0.0 - 初始版本"


class SubmissionRequest(BaseModel):
    """Plugin submission payload as posted by the marketplace form."""
    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    cn_name: str
    author: str
    description: str
    code: str
    version: Optional[str] = None
    full_description: Optional[str] = None
    category: Optional[str] = None
    commands: Optional[List[str]] = None
    features: Optional[List[str]] = None
    usage: Optional[str] = None
    changelog: Optional[str] = None
    notes: Optional[str] = None


class PluginConfig(BaseModel):
    """Contents of plugins/<id>/config.json"""
    id: str
    name: str
    cn_name: str
    version: str = DEFAULT_VERSION
    author: str
    description: str
    full_description: str
    category: str = DEFAULT_CATEGORY
    keywords: List[str] = []
    triggers: List[str] = []
    features: List[str] = []
    usage: str = ""
    commands: List[str] = []
    changelog: str = DEFAULT_CHANGELOG
    notes: str = ""
    featured: bool = False

    @classmethod
    def from_submission(cls, req: SubmissionRequest) -> "PluginConfig":
        # Falsy optional values fall back to their defaults, "" included.
        commands = list(req.commands or [])
        return cls(
            id=req.id,
            name=req.id,
            cn_name=req.cn_name,
            version=req.version or DEFAULT_VERSION,
            author=req.author,
            description=req.description,
            full_description=req.full_description or req.description,
            category=req.category or DEFAULT_CATEGORY,
            keywords=[],
            triggers=commands,
            features=list(req.features or []),
            usage=req.usage or "",
            commands=commands,
            changelog=req.changelog or DEFAULT_CHANGELOG,
            notes=req.notes or "",
            featured=False,
        )


class PluginIndexEntry(PluginConfig):
    """One entry of the shared plugins.json list"""
    downloads: int = 0
    rating: float = 5.0
    download_url: str

    @classmethod
    def from_config(cls, config: PluginConfig, download_url: str) -> "PluginIndexEntry":
        return cls(**config.model_dump(), downloads=0, rating=5.0, download_url=download_url)


class PluginIndex(BaseModel):
    """
    The shared catalog file. Existing entries are kept as raw dicts so fields
    written by other tools survive a rewrite untouched.
    """
    model_config = ConfigDict(extra="allow")

    version: str = DEFAULT_VERSION
    last_updated: str = ""
    plugins: List[Dict[str, Any]] = Field(default_factory=list)

    def ids(self) -> List[str]:
        return [p.get("id") for p in self.plugins]

    def has_plugin(self, plugin_id: str) -> bool:
        return plugin_id in self.ids()

    def get_plugin(self, plugin_id: str) -> Optional[Dict[str, Any]]:
        for plugin in self.plugins:
            if plugin.get("id") == plugin_id:
                return plugin
        return None

    def append(self, entry: PluginIndexEntry, updated_on: str):
        self.plugins.append(entry.model_dump())
        self.last_updated = updated_on
