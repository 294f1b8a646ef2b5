"""
ingestion/irc.py
================
Twitch IRC line parsing.

Twitch chat speaks IRC with IRCv3 message tags. With the `twitch.tv/tags`
capability enabled a chat line looks like:

    @badges=subscriber/12,premium/1;color=#1E90FF;display-name=Foo;user-id=42 \
        :foo!foo@foo.tmi.twitch.tv PRIVMSG #somechannel :hello chat

`parse_line()` splits one raw line into an `IrcMessage`; `to_chat_event()`
turns a PRIVMSG into the `ChatEvent` the fan-out pipeline consumes.
"""

from dataclasses import dataclass, field

DEFAULT_COLOR = "#ffffff"

_TAG_ESCAPES = {":": ";", "s": " ", "\\": "\\", "r": "\r", "n": "\n"}


@dataclass
class IrcMessage:
    command: str
    params: list[str] = field(default_factory=list)
    tags: dict[str, str] = field(default_factory=dict)
    prefix: str | None = None

    @property
    def nick(self) -> str:
        if not self.prefix:
            return ""
        return self.prefix.split("!", 1)[0]

    @property
    def trailing(self) -> str:
        return self.params[-1] if self.params else ""


@dataclass(frozen=True)
class ChatEvent:
    """One inbound chat line, as handed to the fan-out pipeline."""
    channel: str
    username: str
    text: str
    external_user_id: str | None = None
    badges: dict = field(default_factory=dict)
    color: str = DEFAULT_COLOR
    is_self: bool = False


def _unescape_tag(value: str) -> str:
    out = []
    chars = iter(value)
    for ch in chars:
        if ch == "\\":
            nxt = next(chars, "")
            out.append(_TAG_ESCAPES.get(nxt, nxt))
        else:
            out.append(ch)
    return "".join(out)


def _parse_tags(raw: str) -> dict[str, str]:
    tags = {}
    for item in raw.split(";"):
        if not item:
            continue
        key, _, value = item.partition("=")
        tags[key] = _unescape_tag(value)
    return tags


def parse_line(line: str) -> IrcMessage | None:
    """Parse one raw IRC line. Returns None for blank input."""
    line = line.rstrip("\r\n")
    if not line:
        return None

    tags: dict[str, str] = {}
    prefix = None

    if line.startswith("@"):
        raw_tags, _, line = line[1:].partition(" ")
        tags = _parse_tags(raw_tags)
    if line.startswith(":"):
        prefix, _, line = line[1:].partition(" ")

    head, sep, trailing = line.partition(" :")
    parts = head.split()
    if not parts:
        return None
    params = parts[1:]
    if sep:
        params.append(trailing)
    return IrcMessage(command=parts[0].upper(), params=params, tags=tags, prefix=prefix)


def parse_badges(raw: str) -> dict[str, str]:
    """'subscriber/12,premium/1' → {'subscriber': '12', 'premium': '1'}"""
    badges = {}
    for item in (raw or "").split(","):
        if not item:
            continue
        name, _, version = item.partition("/")
        badges[name] = version
    return badges


def _strip_action(text: str) -> str:
    # /me lines arrive wrapped in CTCP ACTION markers
    if text.startswith("\x01ACTION ") and text.endswith("\x01"):
        return text[len("\x01ACTION "):-1]
    return text


def to_chat_event(msg: IrcMessage, own_login: str = "") -> ChatEvent | None:
    """Build a ChatEvent from a PRIVMSG; anything else yields None."""
    if msg.command != "PRIVMSG" or len(msg.params) < 2:
        return None

    login = msg.tags.get("login") or msg.nick
    username = msg.tags.get("display-name") or login
    return ChatEvent(
        channel=msg.params[0].lstrip("#").lower(),
        username=username,
        text=_strip_action(msg.trailing),
        external_user_id=msg.tags.get("user-id") or None,
        badges=parse_badges(msg.tags.get("badges", "")),
        color=msg.tags.get("color") or DEFAULT_COLOR,
        is_self=bool(own_login) and login.lower() == own_login.lower(),
    )
