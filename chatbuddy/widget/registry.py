"""Page-wide record of the mounted widget"""
from typing import Any, Dict, Optional

from chatbuddy.widget.conversation import ConversationState

INSTANCE_KEY = "default-widget-instance"


class WidgetRegistry:
    """
    One per page

    Holds the live instance, the ``init_in_progress`` flag competing
    initializers wait on, and the conversation state shared by every
    render of the widget on this page.
    """

    def __init__(self):
        self._instances: Dict[str, Any] = {}
        self.init_in_progress = False
        self.conversation = ConversationState()

    def get(self, key: str = INSTANCE_KEY) -> Optional[Any]:
        return self._instances.get(key)

    def set(self, instance: Any, key: str = INSTANCE_KEY) -> None:
        self._instances[key] = instance

    def clear(self, key: str = INSTANCE_KEY) -> None:
        self._instances.pop(key, None)

    def __contains__(self, key: str) -> bool:
        return key in self._instances
