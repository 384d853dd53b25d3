"""Pydantic schema for model.yaml.

Dependencies come in two shapes on disk:

    dependencies:
      acme/core: v1.0.0                 # short form, key is the source
      shared:
        path: ./packages/shared         # extended form
      patterns:
        source: acme/patterns
        ref: stable

Both are normalized into ``DependencySpec`` before any other code sees them.
"""

from typing import Any

from pydantic import BaseModel
from pydantic import ConfigDict
from pydantic import Field
from pydantic import model_validator

from ..paths import DEFAULT_ENTRY

DEFAULT_REF = "main"


class ModelIdentity(BaseModel):
    """Project identity under ``model:``."""

    model_config = ConfigDict(extra="allow")

    name: str | None = Field(default=None, description="Project name")
    version: str | None = Field(default=None, description="Semantic version of this model")
    entry: str = Field(default=DEFAULT_ENTRY, description="Entry .dlang file relative to the manifest")


class DependencySpec(BaseModel):
    """A single dependency, normalized from short or extended form."""

    model_config = ConfigDict(extra="allow")

    source: str | None = Field(default=None, description="Git package source (owner/repo or URL)")
    path: str | None = Field(default=None, description="Local path relative to the workspace root")
    ref: str | None = Field(default=None, description="Tag, branch, commit, 'latest' or 'stable'")
    description: str | None = None
    short_form: bool = Field(default=False, exclude=True)

    @property
    def is_local(self) -> bool:
        return self.path is not None

    @property
    def effective_ref(self) -> str:
        return self.ref or DEFAULT_REF

    def to_yaml(self) -> str | dict[str, Any]:
        """Serialize back to the shape it was written in."""
        if self.short_form and self.ref is not None:
            return self.ref
        return self.model_dump(exclude_none=True, exclude_unset=True)


class GovernancePolicy(BaseModel):
    """Organization rules checked by ``audit`` and ``compliance``."""

    model_config = ConfigDict(extra="allow", populate_by_name=True)

    allowed_sources: list[str] = Field(default_factory=list, alias="allowedSources")
    blocked_packages: list[str] = Field(default_factory=list, alias="blockedPackages")
    require_stable_versions: bool = Field(default=False, alias="requireStableVersions")
    require_team_ownership: bool = Field(default=False, alias="requireTeamOwnership")


class ManifestMetadata(BaseModel):
    model_config = ConfigDict(extra="allow")

    team: str | None = None
    contact: str | None = None
    domain: str | None = None


class ProjectManifest(BaseModel):
    """Parsed model.yaml."""

    model_config = ConfigDict(extra="allow")

    model: ModelIdentity | None = None
    paths: dict[str, str] = Field(default_factory=dict)
    dependencies: dict[str, DependencySpec] = Field(default_factory=dict)
    overrides: dict[str, str] = Field(default_factory=dict)
    governance: GovernancePolicy | None = None
    metadata: ManifestMetadata | None = None

    @model_validator(mode="before")
    @classmethod
    def _normalize_dependencies(cls, data: Any) -> Any:
        if not isinstance(data, dict):
            return data
        deps = data.get("dependencies")
        if deps is None:
            return data
        if not isinstance(deps, dict):
            raise ValueError("'dependencies' must be a mapping")

        normalized: dict[str, Any] = {}
        for key, value in deps.items():
            if isinstance(value, str | int | float):
                normalized[str(key)] = {"source": str(key), "ref": str(value), "short_form": True}
            elif value is None:
                normalized[str(key)] = {"source": str(key), "short_form": True}
            else:
                normalized[str(key)] = value
        return {**data, "dependencies": normalized}

    @property
    def entry(self) -> str:
        return self.model.entry if self.model else DEFAULT_ENTRY

    def package_key(self, name: str) -> str:
        """Package key (lock/cache identity) for the dependency declared as ``name``."""
        spec = self.dependencies[name]
        return spec.source or name

    def git_dependencies(self) -> dict[str, str]:
        """Map package key to requested ref for every git dependency."""
        return {
            spec.source: spec.effective_ref for spec in self.dependencies.values() if spec.source and not spec.is_local
        }

    def to_yaml_dict(self) -> dict[str, Any]:
        """Dump to plain data preserving the on-disk shapes."""
        data = self.model_dump(by_alias=True, exclude_unset=True, exclude_none=True)
        if self.dependencies or "dependencies" in self.model_fields_set:
            data["dependencies"] = {key: spec.to_yaml() for key, spec in self.dependencies.items()}
        return data
