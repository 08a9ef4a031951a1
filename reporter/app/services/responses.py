"""
Response write path.

Records response creates/updates on behalf of the response-collection UI
and notifies the auto-generation trigger once each write is stored. The
trigger is best-effort: a failure there never rolls back or rejects the
write that caused it.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Callable, Optional

from reporter.app.errors import ResponsePolicyError
from reporter.app.schemas.forms import Form, FormResponse, ResponseStatus
from reporter.app.schemas.report import utcnow
from reporter.app.services.auto_generation import AutoGenerationTrigger
from reporter.app.storage.forms import FormDirectory, ResponseRepository

logger = logging.getLogger(__name__)


class ResponseService:

    def __init__(
        self,
        *,
        forms: FormDirectory,
        responses: ResponseRepository,
        trigger: Optional[AutoGenerationTrigger] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self._forms = forms
        self._responses = responses
        self._trigger = trigger
        self._clock = clock or utcnow

    def _form_for(self, response: FormResponse) -> Form:
        form = self._forms.get(response.form_id)
        if form is None:
            raise ResponsePolicyError(f"Form '{response.form_id}' does not exist")
        return form

    async def create(self, response: FormResponse) -> FormResponse:
        """
        Record a new response.

        Raises:
            ResponsePolicyError: unknown or closed form, duplicate id, or a
            second response where the form allows only one per user.
        """
        form = self._form_for(response)

        if self._responses.get(response.id) is not None:
            raise ResponsePolicyError(f"Response '{response.id}' already exists")
        if not form.is_accepting_responses(self._clock()):
            raise ResponsePolicyError(f"Form '{form.id}' is not accepting responses")
        if not form.allow_multiple_responses and self._responses.by_user_and_form(
            response.user_id, form.id
        ):
            raise ResponsePolicyError(
                f"User '{response.user_id}' already responded to form '{form.id}'"
            )

        self._responses.put(response)
        logger.info(
            "Recorded response %s (form=%s user=%s)",
            response.id,
            form.id,
            response.user_id,
        )
        await self._after_write(response)
        return response

    async def update(self, response: FormResponse) -> FormResponse:
        """
        Replace an existing response.

        Raises:
            ResponsePolicyError: unknown response, owner or form change, or
            modification of a submitted response where the form forbids it.
        """
        existing = self._responses.get(response.id)
        if existing is None:
            raise ResponsePolicyError(f"Response '{response.id}' does not exist")
        if existing.form_id != response.form_id or existing.user_id != response.user_id:
            raise ResponsePolicyError("A response cannot change its form or owner")

        form = self._form_for(response)
        if existing.status == ResponseStatus.SUBMITTED and not form.allow_response_modification:
            raise ResponsePolicyError(
                f"Form '{form.id}' does not allow modifying submitted responses"
            )

        self._responses.put(response)
        logger.info("Updated response %s (form=%s)", response.id, form.id)
        await self._after_write(response)
        return response

    async def _after_write(self, response: FormResponse) -> None:
        if self._trigger is None:
            return
        try:
            await self._trigger.on_response_saved(response)
        except Exception:
            # The write is already stored
            logger.exception("Auto-generation hook failed for response %s", response.id)
