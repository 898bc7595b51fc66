import asyncio
import json

import httpx

from chatbuddy.services.phone import INVALID_PHONE_MESSAGE
from chatbuddy.widget.controller import MountConfig, mount
from chatbuddy.widget.conversation import LEAD_FAILED_MESSAGE, STAGE_BHK, STAGE_PHONE, STAGE_THANK_YOU
from chatbuddy.widget.page import HostPage
from chatbuddy.widget.registry import WidgetRegistry


def recording_client(leads_status=201):
    posted = {"leads": [], "events": []}

    def handler(request):
        if request.url.path == "/api/leads":
            posted["leads"].append(json.loads(request.content))
            if leads_status >= 400:
                return httpx.Response(leads_status, json={"error": "Invalid or missing BHK preference"})
            return httpx.Response(201, json={"message": "Lead created", "lead": {"id": 7}})
        if request.url.path == "/api/events":
            posted["events"].append(json.loads(request.content))
            return httpx.Response(202, json={"accepted": True})
        return httpx.Response(503)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), posted


async def mounted(client):
    page = HostPage(url="https://tower.in/")
    registry = WidgetRegistry()
    config = MountConfig(
        api_base_url="https://api.tower.in",
        project_id="tower-a",
        microsite="tower.in",
        theme={"agentName": "Asha", "autoOpenDelayMs": 0, "propertyInfo": {"name": "Skyline"}},
    )
    instance = await mount(page, registry, config, http_client=client)
    return page, registry, instance


def test_full_conversation_submits_lead():
    client, posted = recording_client()

    async def run():
        page, registry, instance = await mounted(client)
        widget = instance.widget
        widget.open()
        assert widget.select_cta("Get pricing details")
        assert widget.select_bhk("2 BHK")
        assert widget.submit_name("  ") is False
        assert widget.submit_name("Ravi")
        assert await widget.submit_phone("123") is False
        invalid_error = registry.conversation.error
        assert await widget.submit_phone("98765 43210")
        await instance.dispatcher.flush()
        markup = str(instance.shadow_root)
        state = registry.conversation
        instance.destroy()
        page.close()
        return state, invalid_error, markup

    state, invalid_error, markup = asyncio.run(run())
    assert invalid_error == INVALID_PHONE_MESSAGE
    assert state.stage == STAGE_THANK_YOU
    assert state.phone_submitted is True
    assert state.lead_id == 7
    assert state.error is None

    lead = posted["leads"][0]
    assert lead["phone"] == "+919876543210"
    assert lead["bhkType"] == "2 BHK"
    assert lead["microsite"] == "tower.in"
    assert lead["metadata"]["projectId"] == "tower-a"
    assert lead["metadata"]["customerName"] == "Ravi"
    assert lead["metadata"]["propertyInfo"] == {"name": "Skyline"}
    assert lead["conversation"][0]["from"] == "agent"

    types = {event["type"] for event in posted["events"]}
    assert types == {"widget_opened", "cta_selected", "bhk_selected", "name_submitted", "lead_submitted"}
    assert "Thanks! Our expert will call you shortly" in markup


def test_rejected_lead_stays_on_phone_stage():
    client, posted = recording_client(leads_status=400)

    async def run():
        page, registry, instance = await mounted(client)
        widget = instance.widget
        widget.open()
        widget.select_cta("Schedule a site visit")
        widget.select_bhk("3 BHK")
        widget.submit_name("Ravi")
        ok = await widget.submit_phone("9876543210")
        await instance.dispatcher.flush()
        state = registry.conversation
        instance.destroy()
        page.close()
        return ok, state

    ok, state = asyncio.run(run())
    assert ok is False
    assert state.stage == STAGE_PHONE
    assert state.error == LEAD_FAILED_MESSAGE
    assert "lead_failed" in {event["type"] for event in posted["events"]}


def test_conversation_survives_theme_updates():
    client, _ = recording_client()

    async def run():
        page, registry, instance = await mounted(client)
        widget = instance.widget
        widget.open()
        widget.select_cta("Request a call back")
        instance.update_theme({"agentName": "Meera", "autoOpenDelayMs": 0})
        result = (
            instance.widget is widget,
            registry.conversation.stage,
            registry.conversation.is_open,
            instance.shadow_root.select_one(".chatbuddy-agent").get_text(),
        )
        await instance.dispatcher.flush()
        instance.destroy()
        page.close()
        return result

    assert asyncio.run(run()) == (True, STAGE_BHK, True, "Meera")


def test_actions_out_of_order_are_ignored():
    client, _ = recording_client()

    async def run():
        page, registry, instance = await mounted(client)
        widget = instance.widget
        result = (widget.select_bhk("2 BHK"), widget.submit_name("Ravi"), await widget.submit_phone("9876543210"))
        instance.destroy()
        page.close()
        return result

    assert asyncio.run(run()) == (False, False, False)


def lead_client(leads_handler):
    posted = {"leads": [], "events": []}

    async def handler(request):
        if request.url.path == "/api/leads":
            posted["leads"].append(json.loads(request.content))
            return await leads_handler(request)
        if request.url.path == "/api/events":
            posted["events"].append(json.loads(request.content))
            return httpx.Response(202, json={"accepted": True})
        return httpx.Response(503)

    return httpx.AsyncClient(transport=httpx.MockTransport(handler)), posted


async def at_phone_stage(client):
    page, registry, instance = await mounted(client)
    widget = instance.widget
    widget.open()
    widget.select_cta("Get pricing details")
    widget.select_bhk("2 BHK")
    widget.submit_name("Ravi")
    return page, registry, instance


def test_name_and_phone_stages_render_inputs():
    client, _ = recording_client()

    async def run():
        page, registry, instance = await mounted(client)
        widget = instance.widget
        widget.open()
        widget.select_cta("Get pricing details")
        widget.select_bhk("2 BHK")
        name_input = instance.shadow_root.select_one('form[data-action="submit-name"] input[name="name"]')
        widget.submit_name("Ravi")
        phone_input = instance.shadow_root.select_one('form[data-action="submit-phone"] input[name="phone"]')
        result = (
            name_input is not None and name_input.get("placeholder"),
            phone_input is not None and phone_input.get("type"),
        )
        await instance.dispatcher.flush()
        instance.destroy()
        page.close()
        return result

    assert asyncio.run(run()) == ("Your name", "tel")


def test_non_json_lead_response_fails_softly():
    async def html_page(request):
        return httpx.Response(200, text="<html>ok</html>", headers={"Content-Type": "text/html"})

    client, posted = lead_client(html_page)

    async def run():
        page, registry, instance = await at_phone_stage(client)
        ok = await instance.widget.submit_phone("9876543210")
        await instance.dispatcher.flush()
        state = registry.conversation
        instance.destroy()
        page.close()
        return ok, state

    ok, state = asyncio.run(run())
    assert ok is False
    assert state.stage == STAGE_PHONE
    assert state.error == LEAD_FAILED_MESSAGE
    assert state.submitting is False
    assert len(posted["leads"]) == 1
    assert "lead_failed" in {event["type"] for event in posted["events"]}


def test_overlapping_phone_submissions_post_one_lead():
    async def slow_created(request):
        await asyncio.sleep(0.05)
        return httpx.Response(201, json={"message": "Lead created", "lead": {"id": 9}})

    client, posted = lead_client(slow_created)

    async def run():
        page, registry, instance = await at_phone_stage(client)
        widget = instance.widget
        results = await asyncio.gather(widget.submit_phone("9876543210"), widget.submit_phone("9876543210"))
        await instance.dispatcher.flush()
        state = registry.conversation
        instance.destroy()
        page.close()
        return results, state

    results, state = asyncio.run(run())
    assert sorted(results) == [False, True]
    assert len(posted["leads"]) == 1
    assert state.stage == STAGE_THANK_YOU
    assert state.lead_id == 9
    assert state.submitting is False
