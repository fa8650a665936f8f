"""
Form field components.

Every field renders the same structure: a label, the control, optional help
text and an error line. Controls reference help and error text through
`aria-describedby` so screen readers announce validation messages.
"""

from typing import Any, Dict, Iterable, Optional, Sequence, Tuple, Union

from ..base import Component


Option = Tuple[str, str]


class FormField(Component):
    """Label + control + help + error wrapper; subclasses supply the control."""

    def __init__(
        self,
        field_id: str,
        label: str,
        *,
        required: bool = False,
        help_text: Optional[str] = None,
        error_text: Optional[str] = None,
    ) -> None:
        self.field_id = field_id
        self.label = label
        self.required = required
        self.help_text = help_text
        self.error_text = error_text

    def _control_attrs(self, **attrs: Any) -> str:
        described = [f"{self.field_id}-{kind}" for kind, text in (("help", self.help_text), ("error", self.error_text)) if text]
        return self.attributes(
            id=self.field_id,
            name=self.field_id,
            required=self.required,
            aria_describedby=" ".join(described) or None,
            aria_invalid="true" if self.error_text else "false",
            **attrs,
        )

    def _notes(self) -> str:
        out = ""
        if self.help_text:
            out += f'<p class="form-help" id="{self.field_id}-help">{self.escape(self.help_text)}</p>'
        if self.error_text:
            out += f'<p class="form-error" role="alert" id="{self.field_id}-error">{self.escape(self.error_text)}</p>'
        return out

    def wrap(self, control_html: str) -> str:
        state = " form-field--error" if self.error_text else ""
        marker = '<span class="form-required" aria-hidden="true">*</span>' if self.required else ""
        return (
            f'<div class="form-field{state}">'
            f'<label for="{self.escape(self.field_id)}" class="form-label">{self.escape(self.label)}{marker}</label>'
            f"{control_html}{self._notes()}</div>"
        )


class TextInputField(FormField):
    """Single-line input (text, email, password, number, date, tel)."""

    def render(
        self,
        *,
        value: Union[str, int, float, None] = "",
        input_type: str = "text",
        autocomplete: Optional[str] = None,
        placeholder: Optional[str] = None,
        **attrs: str,
    ) -> str:
        # Password fields never echo the submitted value back
        shown = None if input_type == "password" else ("" if value is None else value)
        control = self._control_attrs(
            type=input_type, value=shown, autocomplete=autocomplete, placeholder=placeholder, **attrs
        )
        return self.wrap(f"<input {control}>")


class TextAreaField(FormField):
    def render(self, value: str = "", rows: int = 5, **attrs: str) -> str:
        control = self._control_attrs(rows=str(rows), **attrs)
        return self.wrap(f"<textarea {control}>{self.escape(value)}</textarea>")


class FileUploadField(FormField):
    """File input used for course images."""

    def render(self, accept: Optional[str] = "image/*", **attrs: str) -> str:
        return self.wrap(f"<input {self._control_attrs(type='file', accept=accept, **attrs)}>")


class SelectField(FormField):
    """Dropdown over `(value, label)` options."""

    def render(
        self,
        options: Iterable[Option],
        *,
        value: Optional[str] = None,
        placeholder: Optional[str] = None,
        **attrs: str,
    ) -> str:
        selected = "" if value is None else str(value)
        choices = [("", placeholder)] if placeholder is not None else []
        choices += [(str(v), str(label)) for v, label in options]
        body = "".join(
            f'<option value="{self.escape(v)}"{" selected" if v and v == selected else ""}>{self.escape(label)}</option>'
            for v, label in choices
        )
        return self.wrap(f"<select {self._control_attrs(**attrs)}>{body}</select>")


class CheckboxField(FormField):
    """Single checkbox; the label wraps the box."""

    def render(self, *, checked: bool = False, value: str = "1", **attrs: str) -> str:
        control = self._control_attrs(type="checkbox", value=value, checked=bool(checked), **attrs)
        return (
            '<div class="form-field form-field--checkbox">'
            f'<label class="form-label"><input {control}> {self.escape(self.label)}</label>'
            f"{self._notes()}</div>"
        )


def options_from(items: Sequence[Dict[str, Any]], *, value_key: str = "id", label_key: str = "name") -> list:
    """Build select options from API rows."""
    return [(str(item.get(value_key, "")), str(item.get(label_key, ""))) for item in items]
