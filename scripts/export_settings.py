import json
import sys
from pathlib import Path
from typing import Type

from pydantic import AliasChoices
from pydantic_core import PydanticUndefined
from pydantic_settings import BaseSettings

root_path = Path(__file__).parent.parent
sys.path.insert(0, str(root_path / "src" / "api"))

from infrastructure.settings import GatewaySettings, UpstreamSettings  # noqa: E402


def _env_vars(prefix: str, name: str, field) -> list[str]:
    alias = field.validation_alias
    if isinstance(alias, AliasChoices):
        return [
            choice
            for choice in alias.choices
            if isinstance(choice, str) and choice.isupper()
        ]
    return [f"{prefix}{name.upper()}"]


def get_model_metadata(settings_class: Type[BaseSettings]):
    prefix = settings_class.model_config.get("env_prefix", "")
    properties = []

    for name, field in settings_class.model_fields.items():
        type_name = getattr(field.annotation, "__name__", str(field.annotation))
        default = field.get_default()

        # Explicit None defaults are not required
        is_required = default is PydanticUndefined

        if is_required or default is None:
            display_default = None
        elif isinstance(default, bool):
            # Keep booleans as booleans (not strings)
            display_default = default
        else:
            display_default = str(default)

        properties.append(
            {
                "env_vars": _env_vars(prefix, name, field),
                "type": type_name,
                "default": display_default,
                "required": is_required,
                "description": field.description or "",
            }
        )

    return {
        "class_name": settings_class.__name__,
        "prefix": prefix,
        "doc": settings_class.__doc__ or "",
        "properties": properties,
    }


def export_settings():
    classes = [GatewaySettings, UpstreamSettings]

    data = {cls.__name__: get_model_metadata(cls) for cls in classes}

    output_path = root_path / "docs" / "env-vars.json"
    output_path.parent.mkdir(parents=True, exist_ok=True)

    with open(output_path, "w") as f:
        json.dump(data, f, indent=2)

    print(f"Exported settings to {output_path}")


if __name__ == "__main__":
    export_settings()
