import os
from copy import deepcopy
from typing import Any, Dict, List, Optional, Tuple, Union, get_args, get_origin

from pydantic import BaseModel, SecretStr
from pydantic_settings import BaseSettings

# Union alias used for configuration defaults and overrides
SettingsLike = Union[
    Dict[str, Any],
    List[Union[Dict[str, Any], BaseSettings, BaseModel]],
    BaseSettings,
    BaseModel,
    None,
]

_MASK = "********"


class _AttrView:
    """Attribute-access wrapper around a nested mapping (``cfg.SECTION.KEY``)."""

    def __init__(self, data: Dict[str, Any]):
        self._data = data

    def __getattr__(self, name: str):
        if name in self._data:
            return _wrap(self._data[name])
        raise AttributeError(f"No such attribute: {name}")

    def __getitem__(self, key: str):
        return _wrap(self._data[key])

    def __contains__(self, key: str) -> bool:
        return key in self._data

    def __repr__(self) -> str:
        return f"_AttrView({self._data!r})"


def _wrap(value: Any) -> Any:
    if isinstance(value, dict):
        return _AttrView(value)
    if isinstance(value, list):
        return [_AttrView(v) if isinstance(v, dict) else v for v in value]
    return value


def _is_secret_annotation(ann: Any) -> bool:
    if ann is SecretStr:
        return True
    if get_origin(ann) is Union:
        return any(a is SecretStr for a in get_args(ann))
    return False


def _nested_model(ann: Any) -> Optional[type]:
    candidates = get_args(ann) if get_origin(ann) is Union else (ann,)
    for candidate in candidates:
        if isinstance(candidate, type) and issubclass(candidate, BaseModel):
            return candidate
    return None


class Config(dict):
    """Layered configuration mapping for taskapi components.

    Layers are merged in order of increasing precedence:

    1. defaults (a ``dict``, pydantic ``BaseModel`` or ``BaseSettings``, or a list of them)
    2. environment variables using ``__`` as the nesting delimiter
       (``TASKAPI__JWT_SECRET=...`` sets ``config["TASKAPI"]["JWT_SECRET"]``)
    3. runtime overrides

    All leaf values are stored as strings. Fields typed as ``SecretStr`` are masked
    in the mapping itself; the real value is available through :meth:`get_secret`.

    Example:
        >>> config = Config({"TASKAPI": TaskApiSettings()})
        >>> config.TASKAPI.URL
        'http://0.0.0.0:8000'
        >>> config.TASKAPI.JWT_SECRET
        '********'
        >>> config.get_secret("TASKAPI", "JWT_SECRET")
        'dev-access-secret'
    """

    def __init__(
        self,
        defaults: SettingsLike = None,
        *,
        overrides: SettingsLike = None,
        apply_env: bool = True,
    ):
        self._secret_paths: set[Tuple[str, ...]] = set()
        self._secrets: Dict[Tuple[str, ...], str] = {}

        merged: Dict[str, Any] = {}
        for layer in self._normalize(defaults):
            merged = self._deep_update(merged, layer)
        if apply_env:
            merged = self._apply_env_overrides(merged)
        for layer in self._normalize(overrides):
            merged = self._deep_update(merged, layer)

        super().__init__(self._stringify_and_mask(merged))

    def __getattr__(self, name: str):
        if name in self:
            return _wrap(self[name])
        raise AttributeError(f"No such attribute: {name}")

    def get_secret(self, *path: str) -> Optional[str]:
        """Return the real value of a secret, e.g. ``get_secret("TASKAPI", "JWT_SECRET")``."""
        return self._secrets.get(tuple(path))

    # -------------------------------------------------------------------------
    # Internals
    # -------------------------------------------------------------------------

    def _normalize(self, settings: SettingsLike) -> List[Dict[str, Any]]:
        if settings is None:
            return []
        if isinstance(settings, list):
            layers: List[Dict[str, Any]] = []
            for item in settings:
                layers.extend(self._normalize(item))
            return layers
        if isinstance(settings, BaseModel):
            self._secret_paths.update(self._collect_secret_paths(type(settings)))
            return [settings.model_dump()]
        if isinstance(settings, dict):
            layer: Dict[str, Any] = {}
            for key, value in settings.items():
                # {"SECTION": SomeModel()} keeps the section model's secret paths
                if isinstance(value, BaseModel):
                    self._secret_paths.update(self._collect_secret_paths(type(value), (key,)))
                    value = value.model_dump()
                layer[key] = deepcopy(value)
            return [layer]
        raise TypeError(f"Unsupported settings type: {type(settings).__name__}")

    def _collect_secret_paths(self, model_cls: type, prefix: Tuple[str, ...] = ()) -> set[Tuple[str, ...]]:
        paths: set[Tuple[str, ...]] = set()
        for name, field in getattr(model_cls, "model_fields", {}).items():
            ann = field.annotation
            if _is_secret_annotation(ann):
                paths.add(prefix + (name,))
                continue
            nested = _nested_model(ann)
            if nested is not None:
                paths.update(self._collect_secret_paths(nested, prefix + (name,)))
        return paths

    @staticmethod
    def _deep_update(base: dict, override: dict) -> dict:
        for key, value in (override or {}).items():
            if isinstance(value, dict) and isinstance(base.get(key), dict):
                base[key] = Config._deep_update(base[key], value)
            else:
                base[key] = value
        return base

    @staticmethod
    def _apply_env_overrides(base: dict, delimiter: str = "__") -> dict:
        result = deepcopy(base)
        for env_key, env_value in os.environ.items():
            if delimiter not in env_key:
                continue
            parts = [p.strip().upper() for p in env_key.split(delimiter) if p.strip()]
            # Only sections present in the defaults are overlaid
            if len(parts) < 2 or parts[0] not in result:
                continue
            node = result
            for key in parts[:-1]:
                if not isinstance(node.get(key), dict):
                    node[key] = {}
                node = node[key]
            node[parts[-1]] = env_value
        return result

    def _stringify_and_mask(self, data: Dict[str, Any]) -> Dict[str, Any]:
        def convert(value: Any, path: Tuple[str, ...]) -> Any:
            if isinstance(value, dict):
                return {k: convert(v, path + (k,)) for k, v in value.items()}
            if isinstance(value, (list, tuple, set)):
                return [convert(v, path) for v in value]
            if isinstance(value, SecretStr):
                self._secrets[path] = value.get_secret_value()
                return _MASK
            if value is None:
                return None
            text = str(value)
            if path in self._secret_paths:
                self._secrets[path] = text
                return _MASK
            return os.path.expanduser(text) if text.startswith("~") else text

        return convert(data, ())
