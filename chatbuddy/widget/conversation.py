"""Chat conversation stages and the widget's markup"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional

from bs4 import BeautifulSoup
from bs4.element import Tag

from chatbuddy.services.phone import normalize_phone
from chatbuddy.services.theme import resolve_theme
from chatbuddy.widget.leads import LeadClient, LeadSubmissionError

logger = logging.getLogger(__name__)

STAGE_CTA = "cta"
STAGE_BHK = "bhk"
STAGE_NAME = "name"
STAGE_PHONE = "phone"
STAGE_THANK_YOU = "thank_you"

CTA_OPTIONS = ("Get pricing details", "Schedule a site visit", "Request a call back")
BHK_OPTIONS = ("1 BHK", "2 BHK", "3 BHK", "4 BHK", "Duplex", "Yet to decide")

NAME_PROMPT = "May I know your name?"
LEAD_FAILED_MESSAGE = "Sorry, we couldn't save your details. Please try again."


@dataclass
class ConversationState:
    """Survives every re-render; mutated only by ChatWidget"""
    is_open: bool = False
    has_shown: bool = False
    stage: str = STAGE_CTA
    messages: List[Dict[str, str]] = field(default_factory=list)
    selected_cta: Optional[str] = None
    selected_bhk: Optional[str] = None
    user_name: str = ""
    name_submitted: bool = False
    phone_submitted: bool = False
    error: Optional[str] = None
    lead_id: Any = None
    # True while a lead POST is in flight
    submitting: bool = False


@dataclass
class WidgetProps:
    api_base_url: Optional[str]
    project_id: str
    microsite: str
    theme: Dict[str, Any]
    on_event: Callable[..., Any]
    preserved_state: ConversationState
    lead_client: LeadClient


class ChatWidget:
    """
    The visitor-facing conversation

    Walks ``cta -> bhk -> name -> phone -> thank_you`` and renders itself
    into ``mount_node`` after every step.
    """

    def __init__(self, props: WidgetProps, mount_node: Tag):
        self.props = props
        self.mount_node = mount_node
        self._soup = BeautifulSoup("", "html.parser")

    @property
    def state(self) -> ConversationState:
        return self.props.preserved_state

    @property
    def theme(self) -> Dict[str, Any]:
        return resolve_theme(self.props.theme)

    def _emit(self, type: str, extra: Optional[Dict[str, Any]] = None) -> None:
        try:
            self.props.on_event(type, extra or {})
        except Exception as e:
            logger.debug(f"Event {type} not dispatched: {e}")

    def _say(self, sender: str, text: str) -> None:
        if text:
            self.state.messages.append({"from": sender, "text": text})

    # Actions

    def open(self, auto: bool = False) -> None:
        state = self.state
        if state.is_open:
            return
        state.is_open = True
        if not state.has_shown:
            state.has_shown = True
            self._say("agent", self.theme["welcomeMessage"])
        self._emit("widget_opened", {"auto": auto})
        self.render()

    def close(self) -> None:
        if not self.state.is_open:
            return
        self.state.is_open = False
        self._emit("widget_closed", {"stage": self.state.stage})
        self.render()

    def select_cta(self, option: str) -> bool:
        state = self.state
        if state.stage != STAGE_CTA or not option:
            return False
        state.selected_cta = option
        state.stage = STAGE_BHK
        self._say("user", option)
        self._say("agent", self.theme["followupMessage"])
        self._say("agent", self.theme["bhkPrompt"])
        self._emit("cta_selected", {"cta": option})
        self.render()
        return True

    def select_bhk(self, option: str) -> bool:
        state = self.state
        if state.stage != STAGE_BHK or not option:
            return False
        state.selected_bhk = option
        state.stage = STAGE_NAME
        self._say("user", option)
        self._say("agent", self.theme["inventoryMessage"])
        self._say("agent", NAME_PROMPT)
        self._emit("bhk_selected", {"bhkType": option})
        self.render()
        return True

    def submit_name(self, name: str) -> bool:
        state = self.state
        name = (name or "").strip()
        if state.stage != STAGE_NAME:
            return False
        if not name:
            state.error = "Please enter your name"
            self.render()
            return False
        state.user_name = name
        state.name_submitted = True
        state.error = None
        state.stage = STAGE_PHONE
        self._say("user", name)
        self._say("agent", self.theme["phonePrompt"])
        self._emit("name_submitted", {})
        self.render()
        return True

    async def submit_phone(self, phone: str) -> bool:
        """
        Validate the number and submit the lead; stays on the phone stage on failure

        Returns False without posting while an earlier submission is in flight.
        """
        state = self.state
        if state.stage != STAGE_PHONE or state.submitting:
            return False

        result = normalize_phone(phone or "")
        if result.error:
            state.error = result.error
            self.render()
            return False

        state.error = None
        state.submitting = True
        try:
            lead = await self.props.lead_client.submit(
                phone=result.value,
                bhk_type=state.selected_bhk or "Yet to decide",
                microsite=self.props.microsite,
                project_id=self.props.project_id,
                metadata={
                    "customerName": state.user_name,
                    "cta": state.selected_cta,
                    "propertyInfo": self.theme.get("propertyInfo") or {},
                },
                conversation=list(state.messages),
            )
        except LeadSubmissionError as e:
            state.error = LEAD_FAILED_MESSAGE
            self._emit("lead_failed", {"error": str(e)})
            self.render()
            return False
        finally:
            state.submitting = False

        state.lead_id = lead.get("id")
        state.phone_submitted = True
        state.stage = STAGE_THANK_YOU
        self._say("user", result.value)
        self._say("agent", self.theme["thankYouMessage"])
        self._emit("lead_submitted", {"leadId": state.lead_id, "bhkType": state.selected_bhk})
        self.render()
        return True

    # Markup

    def _tag(self, tag_name: str, text: Optional[str] = None, **attrs: Any) -> Tag:
        tag = self._soup.new_tag(tag_name, attrs={key.rstrip("_").replace("_", "-"): value for key, value in attrs.items()})
        if text is not None:
            tag.string = str(text)
        return tag

    def _options(self, options, action: str) -> Tag:
        group = self._tag("div", class_="chatbuddy-options", data_action=action)
        for option in options:
            group.append(self._tag("button", option, type="button", class_="chatbuddy-option", data_value=option))
        return group

    def _input(self, name: str, placeholder: str, input_type: str = "text") -> Tag:
        form = self._tag("form", class_="chatbuddy-input", data_action=f"submit-{name}")
        form.append(self._tag("input", type=input_type, name=name, placeholder=placeholder))
        form.append(self._tag("button", "Send", type="submit"))
        return form

    def _panel(self, theme: Dict[str, Any]) -> Tag:
        state = self.state
        panel = self._tag("section", class_="chatbuddy-panel", role="dialog")

        header = self._tag("header", class_="chatbuddy-header")
        header.append(self._tag("img", class_="chatbuddy-avatar", src=theme["avatarUrl"], alt=theme["agentName"]))
        header.append(self._tag("span", theme["agentName"], class_="chatbuddy-agent"))
        header.append(self._tag("button", "×", type="button", class_="chatbuddy-close", aria_label="Close chat"))
        panel.append(header)

        property_info = theme.get("propertyInfo") or {}
        summary = " · ".join(str(property_info[key]) for key in ("name", "location", "price") if property_info.get(key))
        if summary:
            panel.append(self._tag("p", summary, class_="chatbuddy-property"))

        messages = self._tag("ol", class_="chatbuddy-messages")
        for message in state.messages:
            messages.append(self._tag("li", message["text"], class_=f"chatbuddy-message chatbuddy-from-{message['from']}"))
        panel.append(messages)

        if state.stage == STAGE_CTA:
            panel.append(self._options(CTA_OPTIONS, "select-cta"))
        elif state.stage == STAGE_BHK:
            panel.append(self._options(BHK_OPTIONS, "select-bhk"))
        elif state.stage == STAGE_NAME:
            panel.append(self._input("name", "Your name"))
        elif state.stage == STAGE_PHONE:
            panel.append(self._input("phone", "Mobile number", input_type="tel"))

        if state.error:
            panel.append(self._tag("p", state.error, class_="chatbuddy-error", role="alert"))
        return panel

    def render(self) -> None:
        theme = self.theme
        state = self.state
        position = theme["bubblePosition"] if theme["bubblePosition"] in ("bottom-left", "bottom-right") else "bottom-right"

        root = self._tag(
            "div",
            class_=f"chatbuddy-widget chatbuddy-{position}",
            data_stage=state.stage,
            data_open="true" if state.is_open else "false",
            style=f"--chatbuddy-primary: {theme['primaryColor']};",
        )
        bubble = self._tag("button", type="button", class_="chatbuddy-bubble", aria_label=f"Chat with {theme['agentName']}")
        bubble.append(self._tag("img", class_="chatbuddy-avatar", src=theme["avatarUrl"], alt=""))
        root.append(bubble)
        if state.is_open:
            root.append(self._panel(theme))

        self.mount_node.clear()
        self.mount_node.append(root)
