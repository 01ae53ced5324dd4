"""Structure-aware secret redaction for text and JSON Lines content."""

import json
import re
from typing import Any, Iterable

import structlog
from pydantic import BaseModel, ConfigDict, Field

from transcript_sync.models.config import RedactionConfig, RedactionPatternConfig
from transcript_sync.redaction.patterns import get_default_patterns

log = structlog.stdlib.get_logger()


class RedactionConfigError(Exception):
    """Raised when a redaction pattern is malformed or does not compile."""

    pass


class CompiledPattern(BaseModel):
    """A redaction pattern ready to be applied.

    At least one of ``regex`` (matched against string values) and
    ``field_regex`` (searched in the enclosing JSON field name) is set.
    """

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    name: str = Field(default=..., description="Pattern name, used in error messages")
    regex: re.Pattern | None = Field(default=None, description="Value matcher")
    field_regex: re.Pattern | None = Field(default=None, description="Field-name matcher")
    capture_group: int = Field(default=0, ge=0, description="Group to redact (0 = whole match)")
    pattern_type: str = Field(default=..., description="Type label for the marker")

    @property
    def marker(self) -> str:
        """The literal replacement text for this pattern."""
        return f"[REDACTED:{self.pattern_type.upper()}]"


def _reject_constant(name: str) -> Any:
    # NaN and Infinity are not JSON; treat such lines as opaque text
    raise ValueError(f"non-standard JSON constant: {name}")


def _compile(pattern: RedactionPatternConfig) -> CompiledPattern:
    regex = None
    field_regex = None

    if pattern.pattern:
        try:
            regex = re.compile(pattern.pattern)
        except re.error as e:
            raise RedactionConfigError(
                f"failed to compile pattern '{pattern.name}': {e}"
            ) from e

    if pattern.field_pattern:
        try:
            field_regex = re.compile(pattern.field_pattern)
        except re.error as e:
            raise RedactionConfigError(
                f"failed to compile field pattern '{pattern.name}': {e}"
            ) from e

    if regex is None and field_regex is None:
        raise RedactionConfigError(
            f"pattern '{pattern.name}' must have either pattern or field_pattern"
        )

    return CompiledPattern(
        name=pattern.name,
        regex=regex,
        field_regex=field_regex,
        capture_group=pattern.capture_group,
        pattern_type=pattern.type,
    )


class Redactor:
    """Scrubs secrets from plain text and JSON Lines content.

    Patterns are applied in declared order, each seeing the output of the
    previous one. A redactor holds no mutable state after construction and
    can be shared freely.
    """

    def __init__(self, patterns: Iterable[RedactionPatternConfig]) -> None:
        """
        Compile a pattern set.

        Args:
            patterns: Patterns to compile, in application order

        Raises:
            RedactionConfigError: If a pattern has no matcher or fails to compile
        """
        self._patterns: tuple[CompiledPattern, ...] = tuple(_compile(p) for p in patterns)
        log.debug("redactor_compiled", pattern_count=len(self._patterns))

    @classmethod
    def from_config(cls, config: RedactionConfig | None) -> "Redactor | None":
        """
        Build a redactor from configuration.

        Built-in patterns come first when ``use_default_patterns`` is set,
        followed by user patterns. The ``enabled`` flag is not checked here.

        Returns:
            A Redactor, or None if config is None or no patterns are configured
        """
        if config is None:
            return None

        patterns: list[RedactionPatternConfig] = []
        if config.use_default_patterns:
            patterns.extend(get_default_patterns())
        patterns.extend(config.patterns)

        if not patterns:
            return None

        return cls(patterns)

    @property
    def patterns(self) -> tuple[CompiledPattern, ...]:
        return self._patterns

    def redact_text(self, text: str) -> str:
        """Apply value-based patterns to plain text.

        Patterns carrying a field matcher need JSON context and are skipped.
        """
        result = text
        for p in self._patterns:
            if p.field_regex is not None or p.regex is None:
                continue
            result = self._apply(result, p)
        return result

    def redact_json_line(self, line: str) -> str:
        """Redact one JSON Lines entry.

        Valid JSON is walked and re-serialized compactly; anything else is
        treated as opaque text and only value-based patterns are applied.
        """
        try:
            data = json.loads(line, parse_constant=_reject_constant)
        except ValueError:
            return self.redact_text(line)

        redacted = self._redact_value(data, "")
        return json.dumps(redacted, ensure_ascii=False, separators=(",", ":"))

    def redact_lines(self, data: bytes) -> bytes:
        """Redact JSON Lines content.

        The number of lines, blank lines, line terminators and a trailing
        newline are all preserved; one malformed line never affects the others.
        """
        out: list[bytes] = []
        for raw in data.split(b"\n"):
            line, cr = (raw[:-1], b"\r") if raw.endswith(b"\r") else (raw, b"")

            if not line.strip():
                out.append(raw)
                continue

            try:
                text = line.decode("utf-8")
            except UnicodeDecodeError:
                # Not UTF-8 so not JSON: redact as text, keep undecodable bytes
                text = line.decode("utf-8", errors="surrogateescape")
                redacted = self.redact_text(text).encode("utf-8", errors="surrogateescape")
                out.append(redacted + cr)
                continue

            out.append(self.redact_json_line(text).encode("utf-8") + cr)

        return b"\n".join(out)

    def _redact_value(self, value: Any, field_name: str) -> Any:
        if isinstance(value, str):
            return self._redact_string(value, field_name)
        if isinstance(value, dict):
            return {k: self._redact_value(v, k) for k, v in value.items()}
        if isinstance(value, list):
            # Elements share the list's own field name
            return [self._redact_value(v, field_name) for v in value]
        return value

    def _redact_string(self, value: str, field_name: str) -> str:
        result = value
        for p in self._patterns:
            if p.field_regex is not None:
                if not field_name or not p.field_regex.search(field_name):
                    continue
                if p.regex is None:
                    result = p.marker
                else:
                    result = self._apply(result, p)
            elif p.regex is not None:
                result = self._apply(result, p)
        return result

    @staticmethod
    def _apply(text: str, p: CompiledPattern) -> str:
        marker = p.marker
        if p.capture_group <= 0:
            return p.regex.sub(lambda m: marker, text)

        group = p.capture_group

        def replace_group(m: re.Match) -> str:
            if group > p.regex.groups:
                return m.group(0)
            start, end = m.span(group)
            if start == -1:
                return m.group(0)
            offset = m.start()
            whole = m.group(0)
            return whole[: start - offset] + marker + whole[end - offset :]

        return p.regex.sub(replace_group, text)
