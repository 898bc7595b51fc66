"""Widget theme fields, defaults and snake_case/camelCase normalization"""
from typing import Any, Dict, Optional

DEFAULT_THEME: Dict[str, Any] = {
    "agentName": "Riya from Homesfy",
    "avatarUrl": "https://cdn.homesfy.com/assets/riya-avatar.png",
    "primaryColor": "#6158ff",
    "followupMessage": "Sure… I'll send that across right away!",
    "bhkPrompt": "Which configuration you are looking for?",
    "inventoryMessage": "That's cool… we have inventory available with us.",
    "phonePrompt": "Please enter your mobile number...",
    "thankYouMessage": "Thanks! Our expert will call you shortly 📞",
    "bubblePosition": "bottom-right",
    "autoOpenDelayMs": 4000,
    "welcomeMessage": "Hi, I'm Riya from Homesfy 👋\nHow can I help you today?",
    "propertyInfo": {},
}

# camelCase field -> snake_case column
FIELD_ALIASES: Dict[str, str] = {
    "projectId": "project_id",
    "agentName": "agent_name",
    "avatarUrl": "avatar_url",
    "primaryColor": "primary_color",
    "followupMessage": "followup_message",
    "bhkPrompt": "bhk_prompt",
    "inventoryMessage": "inventory_message",
    "phonePrompt": "phone_prompt",
    "thankYouMessage": "thank_you_message",
    "bubblePosition": "bubble_position",
    "autoOpenDelayMs": "auto_open_delay_ms",
    "welcomeMessage": "welcome_message",
    "propertyInfo": "property_info",
    "createdBy": "created_by",
    "updatedBy": "updated_by",
}

# Fields a dashboard may write
WRITABLE_FIELDS = [
    "agentName",
    "avatarUrl",
    "primaryColor",
    "followupMessage",
    "bhkPrompt",
    "inventoryMessage",
    "phonePrompt",
    "thankYouMessage",
    "bubblePosition",
    "autoOpenDelayMs",
    "welcomeMessage",
    "propertyInfo",
    "createdBy",
    "updatedBy",
]

BUBBLE_POSITIONS = ("bottom-right", "bottom-left")


def normalize_theme_fields(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """
    Map a config payload in either naming convention onto camelCase

    camelCase wins when both spellings are present. Keys that are not theme
    fields are dropped; ``propertyInfo`` is always present.
    """
    if not isinstance(data, dict):
        return {}

    normalized: Dict[str, Any] = {}
    for camel, snake in FIELD_ALIASES.items():
        value = data.get(camel)
        if value is None:
            value = data.get(snake)
        if value is not None:
            normalized[camel] = value

    property_info = normalized.get("propertyInfo")
    normalized["propertyInfo"] = property_info if isinstance(property_info, dict) else {}
    return normalized


def sanitize_update(update: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Keep only writable fields from a dashboard update"""
    normalized = normalize_theme_fields(update)
    sanitized = {field: normalized[field] for field in WRITABLE_FIELDS if field in normalized}

    if "propertyInfo" not in (update or {}) and "property_info" not in (update or {}):
        sanitized.pop("propertyInfo", None)

    if sanitized.get("bubblePosition") not in (None, *BUBBLE_POSITIONS):
        sanitized.pop("bubblePosition")

    if "autoOpenDelayMs" in sanitized:
        try:
            sanitized["autoOpenDelayMs"] = max(0, int(sanitized["autoOpenDelayMs"]))
        except (TypeError, ValueError):
            sanitized.pop("autoOpenDelayMs")

    return sanitized


def default_config(project_id: str) -> Dict[str, Any]:
    """The config served when a project has no stored row"""
    return {"projectId": project_id, **DEFAULT_THEME, "propertyInfo": {}}


def resolve_theme(theme: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Fill every missing or empty display field from DEFAULT_THEME"""
    resolved = dict(DEFAULT_THEME)
    for key, value in (theme or {}).items():
        if value is None or value == "":
            continue
        resolved[key] = value
    if not isinstance(resolved.get("propertyInfo"), dict):
        resolved["propertyInfo"] = {}
    return resolved


def strip_empty(theme: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Drop None values so two themes compare on what they actually set"""
    return {key: value for key, value in (theme or {}).items() if value is not None}
