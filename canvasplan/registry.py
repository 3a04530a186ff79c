"""Capability registry: the image, video and music models and plugins a plan may use."""
from __future__ import annotations

import json
import logging
import re
from pathlib import Path

from pydantic import ValidationError

from schemas import ModelCapability

from .config import FALLBACK_MAX_CLIP_SECONDS

log = logging.getLogger(__name__)

DEFAULT_REGISTRY_FILE = Path(__file__).parent / "data" / "capabilities.json"

# Consulted only when no model of a kind is flagged isDefault.
PREFERRED_DEFAULTS = {
    "image": ("google-nano-banana", "flux-1.1-pro", "z-image-turbo"),
    "video": ("veo-3.1-fast", "veo-3.1", "sora-2-pro"),
}

_default_registry: "CapabilityRegistry | None" = None

_MODEL_TAIL_RE = re.compile(r"\bmodel\b\s*(?:to\b|as\b|=|:)?\s*(.*)$", re.IGNORECASE)
_LEADING_VERB_RE = re.compile(r"^(?:please\s+)?(?:use|switch\s+to|try|with)\s+", re.IGNORECASE)


class RegistryError(ValueError):
    """The registry file is missing or malformed."""


class UnknownReferenceError(LookupError):
    """A model, plugin or image the user named does not exist."""

    def __init__(self, what: str, query: str, alternatives: list[str]) -> None:
        self.what = what
        self.query = query
        self.alternatives = alternatives
        super().__init__(f"Unknown {what}: {query!r}")

    @property
    def user_message(self) -> str:
        msg = f"I couldn't find a {self.what} called \"{self.query}\"."
        if self.alternatives:
            msg += " Available: " + ", ".join(self.alternatives) + "."
        return msg


def normalize_model_query(query: str) -> str:
    """Reduce phrases like 'change the model to Veo 3.1' to the model name."""
    text = query.strip().strip("\"'")
    m = _MODEL_TAIL_RE.search(text)
    if m:
        tail = m.group(1).strip(" .!?\"'")
        if len(tail) >= 3:
            return tail
    text = _LEADING_VERB_RE.sub("", text).strip(" .!?\"'")
    return re.sub(r"^the\s+|\s+model$", "", text, flags=re.IGNORECASE)


def _compact(text: str) -> str:
    return re.sub(r"[^a-z0-9]", "", text.lower())


class CapabilityRegistry:
    def __init__(self, models: list[ModelCapability]) -> None:
        self._models = list(models)

    @classmethod
    def from_file(cls, path: Path) -> "CapabilityRegistry":
        try:
            data = json.loads(Path(path).read_text(encoding="utf-8"))
            models = [ModelCapability.model_validate(m) for m in data["models"]]
        except (OSError, json.JSONDecodeError, KeyError, TypeError, ValidationError) as exc:
            raise RegistryError(f"Cannot load capability registry {path}: {exc}") from exc
        log.info("Loaded %d capabilities from %s", len(models), path)
        return cls(models)

    @classmethod
    def default(cls) -> "CapabilityRegistry":
        """The packaged registry, loaded once."""
        global _default_registry
        if _default_registry is None:
            _default_registry = cls.from_file(DEFAULT_REGISTRY_FILE)
        return _default_registry

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def models(self, kind: str | None = None) -> list[ModelCapability]:
        return [m for m in self._models if kind is None or m.kind == kind]

    def names(self, kind: str) -> list[str]:
        return [m.name for m in self.models(kind)]

    def find(self, query: str | None, kind: str | None = None) -> ModelCapability | None:
        """Exact id, then exact name, then substring (case-insensitive)."""
        if not query:
            return None
        q = normalize_model_query(query).lower()
        if not q:
            return None
        candidates = self.models(kind)
        for m in candidates:
            if m.id.lower() == q:
                return m
        for m in candidates:
            if m.name.lower() == q:
                return m
        for m in candidates:
            if q in m.id.lower() or q in m.name.lower():
                return m
        cq = _compact(q)
        if len(cq) >= 3:
            for m in candidates:
                if cq in _compact(m.id) or cq in _compact(m.name):
                    return m
        return None

    def require(self, query: str, kind: str) -> ModelCapability:
        found = self.find(query, kind)
        if found is None:
            what = "plugin" if kind == "plugin" else f"{kind} model"
            raise UnknownReferenceError(what, query, self.names(kind))
        return found

    def plugin(self, plugin_id: str | None) -> ModelCapability | None:
        return self.find(plugin_id, "plugin")

    # ------------------------------------------------------------------
    # Defaults
    # ------------------------------------------------------------------

    def default_model(self, kind: str) -> ModelCapability | None:
        candidates = self.models(kind)
        if not candidates:
            return None
        for m in candidates:
            if m.is_default:
                return m
        for model_id in PREFERRED_DEFAULTS.get(kind, ()):
            for m in candidates:
                if m.id == model_id:
                    return m
        return candidates[0]

    def default_img2img_model(self) -> ModelCapability | None:
        """The default image model if it accepts references, else the first one that does."""
        default = self.default_model("image")
        if default is not None and default.image_to_image:
            return default
        capable = [m for m in self.models("image") if m.image_to_image]
        for model_id in PREFERRED_DEFAULTS["image"]:
            for m in capable:
                if m.id == model_id:
                    return m
        return capable[0] if capable else None

    def resolve(self, query: str | None, kind: str) -> ModelCapability | None:
        """The named model of this kind, or the kind's default."""
        return self.find(query, kind) or self.default_model(kind)

    def resolve_image_model(self, query: str | None, img2img: bool) -> ModelCapability | None:
        if query:
            found = self.find(query, "image")
            if found is not None:
                return found
        return self.default_img2img_model() if img2img else self.default_model("image")

    # ------------------------------------------------------------------
    # Temporal limits
    # ------------------------------------------------------------------

    @staticmethod
    def supported_durations(model: ModelCapability | None) -> list[int] | None:
        if model is None or model.temporal is None or not model.temporal.supported_durations:
            return None
        return sorted(model.temporal.supported_durations)

    @classmethod
    def max_clip_seconds(cls, model: ModelCapability | None) -> int:
        """Longest clip one step may request: maxOutputSeconds capped by the longest supported duration."""
        if model is None or model.temporal is None:
            return FALLBACK_MAX_CLIP_SECONDS
        limit = model.temporal.max_output_seconds
        supported = cls.supported_durations(model)
        if supported:
            limit = min(limit, supported[-1])
        return limit

    # ------------------------------------------------------------------
    # Overview
    # ------------------------------------------------------------------

    def describe(self) -> str:
        """Capability overview shown for 'what can you do' requests."""
        lines = ["Here is what I can put on your canvas.", "", "IMAGE MODELS"]
        for m in self.models("image"):
            tags = ["image-to-image" if m.image_to_image else "text-to-image"]
            if m.is_default:
                tags.append("default")
            lines.append(f"- {m.name} ({', '.join(tags)}): {m.description}")
        lines += ["", "VIDEO MODELS"]
        for m in self.models("video"):
            durations = self.supported_durations(m)
            span = f"{', '.join(str(d) for d in durations)}s clips" if durations else f"up to {self.max_clip_seconds(m)}s"
            extra = ", first/last frame" if m.first_last_frame else ""
            lines.append(f"- {m.name} ({span}{extra}): {m.description}")
        lines += ["", "MUSIC MODELS"]
        lines += [f"- {m.name}: {m.description}" for m in self.models("music")]
        lines += ["", "PLUGINS"]
        lines += [f"- {m.name} [{m.id}]: {m.description}" for m in self.models("plugin")]
        lines += [
            "",
            "Videos longer than one clip are split into clips joined by generated boundary frames",
            "(first-last frame), one frame per clip (first frame) or a single shared reference.",
        ]
        return "\n".join(lines)
