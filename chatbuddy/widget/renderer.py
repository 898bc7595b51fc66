"""Render root for the chat widget"""
from bs4.element import Tag

from chatbuddy.widget.conversation import ChatWidget, WidgetProps

WIDGET_CSS = """
:host { all: initial; }
.chatbuddy-widget { position: fixed; bottom: 24px; z-index: 2147483000; font-family: system-ui, sans-serif; }
.chatbuddy-bottom-right { right: 24px; }
.chatbuddy-bottom-left { left: 24px; }
.chatbuddy-bubble { width: 64px; height: 64px; border: 0; border-radius: 50%; background: var(--chatbuddy-primary); cursor: pointer; }
.chatbuddy-avatar { width: 100%; height: 100%; border-radius: 50%; object-fit: cover; }
.chatbuddy-panel { position: absolute; bottom: 80px; width: 340px; max-height: 520px; display: flex; flex-direction: column; background: #fff; border-radius: 16px; box-shadow: 0 12px 40px rgba(0, 0, 0, 0.18); overflow: hidden; }
.chatbuddy-bottom-right .chatbuddy-panel { right: 0; }
.chatbuddy-bottom-left .chatbuddy-panel { left: 0; }
.chatbuddy-header { display: flex; align-items: center; gap: 8px; padding: 12px; background: var(--chatbuddy-primary); color: #fff; }
.chatbuddy-header .chatbuddy-avatar { width: 32px; height: 32px; }
.chatbuddy-close { margin-left: auto; background: none; border: 0; color: inherit; font-size: 20px; cursor: pointer; }
.chatbuddy-property { margin: 0; padding: 8px 12px; font-size: 12px; background: #f4f4ff; }
.chatbuddy-messages { list-style: none; margin: 0; padding: 12px; overflow-y: auto; flex: 1; }
.chatbuddy-message { margin: 6px 0; padding: 8px 12px; border-radius: 12px; white-space: pre-line; max-width: 80%; }
.chatbuddy-from-agent { background: #f1f1f5; }
.chatbuddy-from-user { background: var(--chatbuddy-primary); color: #fff; margin-left: auto; }
.chatbuddy-options { display: flex; flex-wrap: wrap; gap: 6px; padding: 12px; }
.chatbuddy-option { border: 1px solid var(--chatbuddy-primary); color: var(--chatbuddy-primary); background: #fff; border-radius: 16px; padding: 6px 12px; cursor: pointer; }
.chatbuddy-input { display: flex; gap: 6px; padding: 12px; }
.chatbuddy-input input { flex: 1; padding: 8px; border: 1px solid #ccc; border-radius: 8px; }
.chatbuddy-error { margin: 0 12px 12px; color: #c62828; font-size: 12px; }
""".strip()

# Used on the host element when no shadow root can be attached
HOST_RESET_STYLE = "all: initial; position: fixed; z-index: 2147483000;"


class RenderRoot:
    """
    Owns the mount node and the single ChatWidget rendered into it

    ``render`` on an existing root only swaps the props; the widget object,
    and with it the conversation, is kept.
    """

    def __init__(self, mount_node: Tag):
        self.mount_node = mount_node
        self.widget = None
        self.render_count = 0
        self.unmounted = False

    def render(self, props: WidgetProps) -> ChatWidget:
        if self.unmounted:
            raise RuntimeError("Render root has been unmounted")
        if self.widget is None:
            self.widget = ChatWidget(props, self.mount_node)
        else:
            self.widget.props = props
        self.widget.render()
        self.render_count += 1
        return self.widget

    def unmount(self) -> None:
        self.mount_node.clear()
        self.widget = None
        self.unmounted = True
