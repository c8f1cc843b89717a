"""Deployment metrics derived from a log transcript."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Literal, Optional

DeployStatus = Literal["pending", "running", "success", "failed"]
StepStatus = Literal["success", "failed", "skipped", "in_progress"]


@dataclass(frozen=True)
class ImageRef:
    """A container image reference split on its last colon."""

    name: str
    tag: str
    full_path: str

    def to_dict(self) -> dict[str, str]:
        return {"name": self.name, "tag": self.tag, "fullPath": self.full_path}


@dataclass(frozen=True)
class DeployStep:
    """One recognised deployment step."""

    name: str
    status: StepStatus
    message: Optional[str] = None
    timestamp: Optional[str] = None

    @property
    def key(self) -> tuple[str, str]:
        return (self.name, self.status)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"name": self.name, "status": self.status}
        if self.message is not None:
            payload["message"] = self.message
        if self.timestamp is not None:
            payload["timestamp"] = self.timestamp
        return payload


@dataclass
class DeployMetrics:
    """
    Structured deployment state for one log transcript.

    Attributes:
        status: Overall status (pending, running, success, failed)
        deploy_time: Formatted time of the last log entry
        duration: Seconds between first and last entry
        namespace: Kubernetes namespace the run targeted
        registry: Container registry the run authenticated against
        images: Unique images seen, in discovery order
        image_name: First image name (legacy single-image field)
        image_tag: First image tag (legacy single-image field)
        steps: Recognised steps
        errors: Distinct error messages
        warnings: Distinct warning outputs
    """
    status: DeployStatus = "pending"
    deploy_time: Optional[str] = None
    duration: Optional[int] = None
    namespace: Optional[str] = None
    registry: Optional[str] = None
    images: list[ImageRef] = field(default_factory=list)
    image_name: Optional[str] = None
    image_tag: Optional[str] = None
    steps: list[DeployStep] = field(default_factory=list)
    errors: list[str] = field(default_factory=list)
    warnings: list[str] = field(default_factory=list)

    @property
    def has_failed_step(self) -> bool:
        return any(step.status == "failed" for step in self.steps)

    @property
    def succeeded_steps(self) -> int:
        return sum(1 for step in self.steps if step.status == "success")

    def add_image(self, full_path: str) -> bool:
        """
        Record an image reference, splitting name and tag on the last colon.

        Returns False (and records nothing) when the reference has no tag.
        The first image also fills the legacy image_name / image_tag fields.
        """
        colon = full_path.rfind(":")
        if colon <= 0:
            return False
        image = ImageRef(name=full_path[:colon], tag=full_path[colon + 1:], full_path=full_path)
        if all(existing.full_path != full_path for existing in self.images):
            self.images.append(image)
        if self.image_name is None:
            self.image_name = image.name
            self.image_tag = image.tag
        return True

    def to_dict(self) -> dict[str, Any]:
        """Serialize with the dashboard's wire keys, omitting absent fields."""
        payload: dict[str, Any] = {"status": self.status}
        optional = {
            "deployTime": self.deploy_time,
            "duration": self.duration,
            "namespace": self.namespace,
            "registry": self.registry,
            "imageName": self.image_name,
            "imageTag": self.image_tag,
        }
        payload.update({key: value for key, value in optional.items() if value is not None})
        payload["images"] = [image.to_dict() for image in self.images]
        payload["steps"] = [step.to_dict() for step in self.steps]
        payload["errors"] = list(self.errors)
        payload["warnings"] = list(self.warnings)
        return payload
