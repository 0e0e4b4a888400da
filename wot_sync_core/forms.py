"""Form selection and href resolution."""

from __future__ import annotations

from yarl import URL

from .errors import FormNotFound
from .models import ActionDescriptor, EventDescriptor, Form, Operation, PropertyDescriptor

DEFAULT_CONTENT_TYPE = "application/json"

_DEFAULT_METHODS: dict[str, str] = {
    Operation.READ_PROPERTY.value: "GET",
    Operation.OBSERVE_PROPERTY.value: "GET",
    Operation.SUBSCRIBE_EVENT.value: "GET",
    Operation.WRITE_PROPERTY.value: "PUT",
    Operation.INVOKE_ACTION.value: "POST",
}


def resolve_form(
    descriptor: PropertyDescriptor | ActionDescriptor | EventDescriptor,
    desired_op: Operation,
) -> Form:
    """Select the form to use for ``desired_op``.

    The first form tagged with the operation wins. Documents that omit ``op``
    tags imply "any", so the first form is the fallback.

    Raises:
        FormNotFound: If the interaction declares no forms.
    """
    if not descriptor.forms:
        raise FormNotFound(
            f"No form declared for '{descriptor.name}' ({desired_op.value})"
        )
    for form in descriptor.forms:
        if form.supports(desired_op):
            return form
    return descriptor.forms[0]


def resolve_href(base: str | None, document_url: str | None, href: str) -> str:
    """Resolve a form href against the TD base or the TD's own URL."""
    url = URL(href)
    if url.is_absolute():
        return href
    anchor = base or document_url
    if not anchor:
        return href
    return str(URL(anchor).join(url))


def method_for(form: Form, operation: Operation) -> str:
    """Request method for ``operation``, honouring the form override."""
    if form.method:
        return form.method
    return _DEFAULT_METHODS[operation.value]


def content_type_for(form: Form) -> str:
    return form.content_type or DEFAULT_CONTENT_TYPE
