"""
In-memory stores for collaborator-owned records.

Forms are owned by the form builder and responses by the response
collection UI. The engine only reads forms and records response writes
so that it can observe them; both stores are injected explicitly.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional, Protocol

from reporter.app.schemas.forms import Form, FormResponse


class FormDirectory(Protocol):

    def get(self, form_id: str) -> Optional[Form]:
        ...


class InMemoryFormDirectory:

    def __init__(self, forms: Iterable[Form] = ()) -> None:
        self._forms: Dict[str, Form] = {form.id: form for form in forms}

    def put(self, form: Form) -> None:
        self._forms[form.id] = form

    def get(self, form_id: str) -> Optional[Form]:
        return self._forms.get(form_id)

    def remove(self, form_id: str) -> Optional[Form]:
        return self._forms.pop(form_id, None)

    def list_all(self) -> List[Form]:
        return list(self._forms.values())


class ResponseRepository:

    def __init__(self, responses: Iterable[FormResponse] = ()) -> None:
        self._responses: Dict[str, FormResponse] = {r.id: r for r in responses}

    def put(self, response: FormResponse) -> None:
        self._responses[response.id] = response

    def get(self, response_id: str) -> Optional[FormResponse]:
        return self._responses.get(response_id)

    def by_form(self, form_id: str) -> List[FormResponse]:
        return [r for r in self._responses.values() if r.form_id == form_id]

    def by_user_and_form(self, user_id: str, form_id: str) -> List[FormResponse]:
        return [
            r for r in self._responses.values()
            if r.user_id == user_id and r.form_id == form_id
        ]

    def remove_form(self, form_id: str) -> int:
        stale = [rid for rid, r in self._responses.items() if r.form_id == form_id]
        for rid in stale:
            del self._responses[rid]
        return len(stale)
