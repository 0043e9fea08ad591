"""Response models for the fuzzing server API."""

from __future__ import annotations

from pydantic import AliasChoices, BaseModel, ConfigDict, Field


class Artifact(BaseModel):
    """An uploaded build bundle, as returned by the artifact import endpoint."""

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    display_name: str = Field(alias="display-name")
    resource_name: str = Field(alias="resource-name")


class Project(BaseModel):
    """A project entry from the project listing."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    name: str
    display_name: str = Field(
        default="",
        validation_alias=AliasChoices("display-name", "display_name", "displayName"),
    )

    @property
    def short_name(self) -> str:
        """Project id without the ``projects/`` prefix."""
        return self.name.removeprefix("projects/")


class ProjectList(BaseModel):
    model_config = ConfigDict(extra="ignore")

    projects: list[Project] = Field(default_factory=list)
