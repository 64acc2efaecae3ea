"""JioMart session bootstrap: overlays, delivery pincode, search-result readiness."""

from __future__ import annotations

import asyncio
import enum
import re
from dataclasses import dataclass, field
from typing import Any

from playwright.async_api import Error as PlaywrightError

import jiomart_scraper.selectors as selectors
from jiomart_scraper.errors import LocationSetupError
from jiomart_scraper.extractors.dom_utils import (
    body_text,
    first_match,
    is_present,
    is_visible_within,
    settle,
    text_content_safe,
)
from jiomart_scraper.logging_config import get_logger
from jiomart_scraper.storage.artifacts import save_screenshot
from jiomart_scraper.storage.sink import RecordSink

LOGGER = get_logger(__name__)

_ADD_TOKEN = re.compile(r"\bAdd\b", re.I)
CURRENCY_MARKER = "₹"

# Clears a stale disabled state left on the Apply button after validation has
# already passed. JioMart-specific; only ever applied to the pincode submit.
_FORCE_ENABLE_SUBMIT = """
(selector) => {
    const btn = document.querySelector(selector);
    if (btn) {
        btn.disabled = false;
        btn.removeAttribute('disabled');
        btn.classList.remove('disabled');
    }
}
"""

_DISPATCH_INPUT_EVENTS = """
([selector, value]) => {
    const input = document.querySelector(selector);
    if (input) {
        input.value = value;
        for (const name of ['input', 'change', 'blur']) {
            input.dispatchEvent(new Event(name, { bubbles: true }));
        }
    }
}
"""

_SHOW_DELIVERY_CONTENT = """
(selector) => {
    const content = document.querySelector(selector);
    if (content && content.style.display === 'none') {
        content.style.display = 'block';
    }
}
"""


# ==== LOCATION SERVICES OVERLAY ====


class PopupOutcome(str, enum.Enum):
    ABSENT = "absent"
    DISMISSED = "dismissed"
    FAILED = "failed"


async def dismiss_location_popup(page: Any) -> PopupOutcome:
    """Close the location-services overlay when present. Never raises."""

    LOGGER.info("Checking for location services popup")
    overlay = page.locator(selectors.LOCATION_OVERLAY).first
    try:
        if not await is_present(overlay):
            LOGGER.info("No location popup detected")
            return PopupOutcome.ABSENT

        for selector in selectors.LOCATION_OVERLAY_CLOSE:
            close_btn = page.locator(selector).first
            if not await is_present(close_btn):
                continue
            try:
                await close_btn.click(timeout=3000)
            except PlaywrightError:
                continue
            LOGGER.info("Clicked popup close button: %s", selector)
            await settle(800)
            if not await is_present(overlay):
                LOGGER.info("Location popup closed")
                return PopupOutcome.DISMISSED

        manual_btn = page.locator(selectors.LOCATION_OVERLAY_MANUAL).first
        if await is_present(manual_btn):
            try:
                await manual_btn.click(timeout=3000)
            except PlaywrightError as exc:
                LOGGER.warning("Failed to click Select Location button: %s", exc)
            else:
                LOGGER.info("Location popup closed via manual selection")
                await settle(1000)
                return PopupOutcome.DISMISSED
    except Exception as exc:
        LOGGER.error("Error closing popup: %s", exc)
        return PopupOutcome.FAILED

    LOGGER.warning("Could not close location popup, continuing")
    return PopupOutcome.FAILED


async def close_lingering_modals(page: Any) -> None:
    """Close a leftover delivery popup or click away a backdrop if one is visible."""

    for selector in (selectors.DELIVERY_POPUP_CLOSE, selectors.BACKDROP):
        locator = page.locator(selector).first
        if not await is_present(locator):
            continue
        if not await is_visible_within(locator, 2000):
            continue
        try:
            await locator.click(timeout=2000)
        except PlaywrightError as exc:
            LOGGER.debug("Could not click %s: %s", selector, exc)
            continue
        await settle(500)


# ==== DELIVERY PINCODE ====


class LocationState(str, enum.Enum):
    IDLE = "idle"
    TRIGGER_OPENED = "trigger_opened"
    POPUP_VISIBLE = "popup_visible"
    INPUT_READY = "input_ready"
    VALUE_ENTERED = "value_entered"
    SUBMITTED = "submitted"
    CONFIRMED = "confirmed"
    FAILED = "failed"


@dataclass(frozen=True)
class LocationTimeouts:
    """Bounds (ms) for every wait in the pincode flow."""

    trigger_visible: int = 3000
    click: int = 5000
    popup_visible: int = 5000
    form_visible: int = 5000
    success_message: int = 5000
    confirm: int = 30000
    load_state: int = 10000
    close_click: int = 2000


@dataclass
class LocationSetter:
    """Drive the header pincode editor from closed to an applied pincode.

    One instance performs one attempt and keeps no memory of earlier runs;
    callers enforce the once-per-run rule. ``run`` returns True only when the
    machine reaches ``CONFIRMED``.
    """

    pincode: str
    sink: RecordSink | None = None
    timeouts: LocationTimeouts = field(default_factory=LocationTimeouts)
    state: LocationState = LocationState.IDLE
    history: list[LocationState] = field(default_factory=list)
    confirmation: str | None = None

    def _advance(self, state: LocationState) -> None:
        self.state = state
        self.history.append(state)
        LOGGER.debug("Location setter -> %s", state.value)

    async def run(self, page: Any) -> bool:
        LOGGER.info("Setting location to pincode: %s", self.pincode)
        try:
            await self._wait_load_state(page, "networkidle")
            await settle(2000)

            await self._open_editor(page)
            await self._wait_for_editor(page)
            await self._reveal_pincode_form(page)
            await self._enter_pincode(page)
            navigation = await self._submit(page)
            await self._confirm(page, navigation)
        except LocationSetupError as exc:
            LOGGER.warning("Location setup stopped at %s: %s", self.state.value, exc)
            self._advance(LocationState.FAILED)
            return False
        except Exception as exc:
            LOGGER.error("Error setting pincode location: %s", exc)
            self._advance(LocationState.FAILED)
            if self.sink is not None:
                await save_screenshot(page, self.sink, "pincode-error")
            return False

        await self._log_header_indicator(page)
        LOGGER.info("Pincode location set successfully")
        return True

    async def _wait_load_state(self, page: Any, state: str) -> None:
        try:
            await page.wait_for_load_state(state, timeout=self.timeouts.load_state)
        except PlaywrightError:
            return

    def _fail(self, message: str) -> LocationSetupError:
        return LocationSetupError(message, pincode=self.pincode)

    async def _open_editor(self, page: Any) -> None:
        selector, trigger = await first_match(
            page,
            selectors.LOCATION_TRIGGERS,
            timeout=self.timeouts.trigger_visible,
        )
        if trigger is None:
            raise self._fail("Could not find location button")
        try:
            await trigger.click(timeout=self.timeouts.click)
        except PlaywrightError as exc:
            raise self._fail(f"Location button click failed: {exc}") from exc
        LOGGER.info("Clicked location button: %s", selector)
        self._advance(LocationState.TRIGGER_OPENED)

    async def _wait_for_editor(self, page: Any) -> None:
        try:
            await page.wait_for_selector(
                selectors.DELIVERY_POPUP,
                state="visible",
                timeout=self.timeouts.popup_visible,
            )
        except PlaywrightError as exc:
            raise self._fail("Delivery popup did not appear") from exc
        LOGGER.info("Delivery popup opened")
        self._advance(LocationState.POPUP_VISIBLE)
        await settle(1500)

    async def _reveal_pincode_form(self, page: Any) -> None:
        try:
            await page.evaluate(_SHOW_DELIVERY_CONTENT, selectors.DELIVERY_CONTENT)
        except PlaywrightError:
            pass

        form = page.locator(selectors.PINCODE_FORM).first
        if not await is_visible_within(form, 500):
            # Saved-addresses view: switch to manual pincode entry first.
            enter_btn = page.locator(selectors.ENTER_PINCODE_BUTTON).first
            if not await is_visible_within(enter_btn, self.timeouts.form_visible):
                raise self._fail('"Enter a pincode" button not found')
            try:
                await enter_btn.click(timeout=self.timeouts.click)
            except PlaywrightError as exc:
                raise self._fail(f'Could not click "Enter a pincode": {exc}') from exc
            LOGGER.info('Clicked "Enter a pincode" button')
            await settle(2000)
            if not await is_visible_within(form, self.timeouts.form_visible):
                raise self._fail("Pincode entry form did not appear")

        pincode_input = page.locator(selectors.PINCODE_INPUT).first
        if not await is_visible_within(pincode_input, self.timeouts.form_visible):
            raise self._fail("Could not find pincode input field")
        LOGGER.info("Pincode entry form ready")
        self._advance(LocationState.INPUT_READY)

    async def _enter_pincode(self, page: Any) -> None:
        pincode_input = page.locator(selectors.PINCODE_INPUT).first
        await pincode_input.click()
        await settle(500)
        await pincode_input.fill("")
        await settle(300)
        await pincode_input.click(click_count=3)
        await settle(200)
        await pincode_input.fill(self.pincode)
        await settle(500)

        value = await pincode_input.input_value()
        if value != self.pincode:
            raise self._fail(f"Pincode mismatch: expected {self.pincode}, got {value}")
        LOGGER.info("Entered pincode: %s", value)

        await page.evaluate(_DISPATCH_INPUT_EVENTS, [selectors.PINCODE_INPUT, self.pincode])
        self._advance(LocationState.VALUE_ENTERED)
        await settle(2000)

    async def _submit(self, page: Any) -> asyncio.Task:
        success = page.locator(selectors.PINCODE_SUCCESS).first
        if await is_visible_within(success, self.timeouts.success_message):
            message = await text_content_safe(page.locator(selectors.PINCODE_MESSAGE).first)
            LOGGER.info("Location detected: %s", message)
        else:
            LOGGER.warning("Location message not detected, checking the Apply button")
        await settle(1000)

        submit = page.locator(selectors.PINCODE_SUBMIT).first
        if not await is_visible_within(submit, self.timeouts.click):
            raise self._fail("Apply button not visible")

        if await submit.is_disabled():
            LOGGER.warning("Apply button is disabled, clearing the disabled state")
            await page.evaluate(_FORCE_ENABLE_SUBMIT, selectors.PINCODE_SUBMIT)
            await settle(500)

        # Armed before the click so a reload triggered by Apply is not missed.
        navigation = asyncio.ensure_future(
            page.wait_for_event("domcontentloaded", timeout=self.timeouts.confirm)
        )
        LOGGER.info("Clicking Apply, page may reload")
        try:
            await submit.click(force=True, timeout=self.timeouts.click)
        except PlaywrightError as exc:
            await _cancel_all({navigation})
            raise self._fail(f"Could not click Apply button: {exc}") from exc
        self._advance(LocationState.SUBMITTED)
        return navigation

    async def _confirm(self, page: Any, navigation: asyncio.Task) -> None:
        popup = page.locator(selectors.DELIVERY_POPUP).first
        hidden = asyncio.ensure_future(
            popup.wait_for(state="hidden", timeout=self.timeouts.confirm)
        )
        self.confirmation = await _first_signal(
            {"navigated": navigation, "popup_hidden": hidden},
            self.timeouts.confirm,
        )
        LOGGER.info("Apply outcome: %s", self.confirmation)

        await self._wait_load_state(page, "domcontentloaded")
        await settle(3000)

        if await _visible_now(popup):
            LOGGER.warning("Delivery popup still visible, closing manually")
            for selector in (selectors.DELIVERY_POPUP_CLOSE, selectors.BACKDROP):
                try:
                    await page.locator(selector).first.click(timeout=self.timeouts.close_click)
                except PlaywrightError:
                    continue
                await settle(1000)
                if not await _visible_now(popup):
                    LOGGER.info("Location modal closed")
                    break
            else:
                # Apply was already clicked; the pincode is usually applied anyway.
                LOGGER.warning("Could not close delivery popup manually, assuming pincode applied")
        else:
            LOGGER.info("Location modal closed")

        self._advance(LocationState.CONFIRMED)

    async def _log_header_indicator(self, page: Any) -> None:
        await self._wait_load_state(page, "networkidle")
        await settle(2000)
        header = await text_content_safe(page.locator(selectors.LOCATION_INDICATOR).first)
        if header and self.pincode in header:
            LOGGER.info("Location verified in header: %s", header)
        else:
            LOGGER.info("Location set, header shows: %s", header or "<unavailable>")


async def _visible_now(locator: Any) -> bool:
    try:
        return await locator.is_visible()
    except PlaywrightError:
        return False


async def _cancel_all(tasks: set[asyncio.Future]) -> None:
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


async def _first_signal(waiters: dict[str, asyncio.Future], timeout_ms: int) -> str:
    """Return the label of the first waiter to succeed, or ``"timeout"``.

    Waiters that fail (e.g. their own timeout) are ignored; whatever is still
    pending when a winner is found or the bound elapses gets cancelled.
    """

    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout_ms / 1000
    labels = {task: label for label, task in waiters.items()}
    pending = set(labels)
    try:
        while pending:
            remaining = deadline - loop.time()
            if remaining <= 0:
                break
            done, pending = await asyncio.wait(
                pending,
                timeout=remaining,
                return_when=asyncio.FIRST_COMPLETED,
            )
            for task in done:
                if not task.cancelled() and task.exception() is None:
                    return labels[task]
        return "timeout"
    finally:
        await _cancel_all(pending)


# ==== SEARCH RESULTS ====


async def wait_for_search_results(page: Any, *, timeout: int = 10000) -> bool:
    """Return True once product cards render, falling back to a body-text heuristic."""

    for selector in selectors.RESULT_READY:
        locator = page.locator(selector)
        if not await is_visible_within(locator.first, timeout):
            continue
        try:
            count = await locator.count()
        except PlaywrightError:
            continue
        if count > 0:
            LOGGER.info("Found %s product elements using: %s", count, selector)
            await settle(1000)
            return True

    text = await body_text(page)
    if CURRENCY_MARKER in text or _ADD_TOKEN.search(text):
        LOGGER.info("Found product indicators in page content")
        return True

    LOGGER.warning("No search results detected")
    return False
