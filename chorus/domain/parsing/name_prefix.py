from typing import AsyncIterable, AsyncIterator, Optional
import re

# Marks a "Name:" boundary in a filtered stream so shapers can split on it
NAME_BOUNDARY = "\0"


def name_prefix_source(escaped_name: str) -> str:
    """Regex source for a name prefix with optional bold/italic wrapping.

    Matches ``Name:``, ``*Name:*``, ``*Name*:``, ``**Name:**`` and ``**Name**:``.
    ``escaped_name`` must already be regex-escaped and may contain a group.
    """
    return rf"\*{{0,2}}{escaped_name}(?::\*{{0,2}}|\*{{1,2}}:)"


def strip_name_prefix(text: str, name: str) -> str:
    """Remove "Name:" prefixes at every line start (case-insensitive)"""
    pattern = re.compile(rf"^{name_prefix_source(re.escape(name))}\s*", re.IGNORECASE | re.MULTILINE)
    return pattern.sub("", text)


class NamePrefixFilter:
    """Incrementally strips "Name:" prefixes at line starts from a fragment feed.

    Only the start of each line is buffered, until it is long enough to rule
    a prefix in or out. With ``boundary`` set, every prefix after the first
    one replaces the newline before it with the boundary string.
    """

    def __init__(self, name: str, boundary: Optional[str] = None):
        self.prefix_pattern = re.compile(rf"^{name_prefix_source(re.escape(name))}", re.IGNORECASE)
        # Longest form is **Name:**
        self.max_prefix_length = len(name) + 5
        self.boundary = boundary

        self.buffer = ""
        self.at_line_start = True
        self.skip_whitespace = False
        self.is_first = True
        self.pending_newline = False

    def feed(self, fragment: str) -> str:
        """Consume one fragment and return the text that is safe to pass on"""

        self.buffer += fragment
        output = ""

        while self.buffer:
            # After a stripped prefix, drop the whitespace before the content
            if self.skip_whitespace:
                stripped = self.buffer.lstrip()
                if not stripped:
                    self.buffer = ""
                    break
                self.buffer = stripped
                self.skip_whitespace = False

            if self.at_line_start:
                match = self.prefix_pattern.match(self.buffer)
                if match:
                    # "**Name:" may still grow into "**Name:**"
                    if match.end() == len(self.buffer):
                        break
                    output += self._prefix_separator()
                    self.buffer = self.buffer[match.end():]
                    self.at_line_start = False
                    self.skip_whitespace = True
                    continue

                # Not enough text yet to rule out a prefix
                if len(self.buffer) < self.max_prefix_length and "\n" not in self.buffer:
                    break

                if self.pending_newline:
                    output += "\n"
                    self.pending_newline = False
                self.is_first = False
                self.at_line_start = False

            newline = self.buffer.find("\n")
            if newline == -1:
                output += self.buffer
                self.buffer = ""
            else:
                output += self.buffer[:newline]
                self.buffer = self.buffer[newline + 1:]
                if self.boundary is not None:
                    # Hold the newline until the next line is checked for a prefix
                    self.pending_newline = True
                else:
                    output += "\n"
                self.at_line_start = True

        return output

    def finish(self) -> str:
        """Flush what end of input leaves behind"""

        separator = "\n" if self.pending_newline else ""
        buffer = self.buffer
        if self.skip_whitespace:
            buffer = buffer.lstrip()
        elif self.at_line_start and buffer:
            match = self.prefix_pattern.match(buffer)
            if match:
                separator = self._prefix_separator()
                buffer = buffer[match.end():].lstrip()

        self.buffer = ""
        self.pending_newline = False
        return separator + buffer

    def _prefix_separator(self) -> str:
        separator = ""
        if self.is_first:
            self.is_first = False
        elif self.boundary is not None:
            separator = self.boundary
        elif self.pending_newline:
            separator = "\n"
        self.pending_newline = False
        return separator


async def strip_name_prefix_from_stream(
    fragments: AsyncIterable[str],
    name: str,
    boundary: Optional[str] = None
) -> AsyncIterator[str]:
    """Strip "Name:" prefixes at line starts from a live fragment feed"""

    prefix_filter = NamePrefixFilter(name, boundary)

    async for fragment in fragments:
        output = prefix_filter.feed(fragment)
        if output:
            yield output

    tail = prefix_filter.finish()
    if tail:
        yield tail
