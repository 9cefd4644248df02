"""Pattern-matching language model for intent recognition.

Patterns are plain text with three constructs:

* ``[a | b]`` optional group, with ``|`` separating alternatives
* ``{name}`` entity placeholder
* ``{name:discriminator}`` a second, independent capture of entity ``name``

Matching is case and punctuation insensitive and covers the whole utterance.
Optional captures that did not take part in a match are left out of the
entity map entirely.
"""

import json
import logging
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

logger = logging.getLogger(__name__)

_NON_WORD = re.compile(r"[^\w\s']")
_WHITESPACE = re.compile(r"\s+")

_ANY_TEXT = r"\S+(?: \S+)*?"

_UNITS = [
    "zero", "one", "two", "three", "four", "five", "six", "seven", "eight", "nine",
    "ten", "eleven", "twelve", "thirteen", "fourteen", "fifteen", "sixteen",
    "seventeen", "eighteen", "nineteen",
]
_TENS = ["twenty", "thirty", "forty", "fifty", "sixty", "seventy", "eighty", "ninety"]


def _build_number_words() -> dict[str, int]:
    words = {word: value for value, word in enumerate(_UNITS)}
    for index, tens_word in enumerate(_TENS):
        tens_value = (index + 2) * 10
        words[tens_word] = tens_value
        for unit in range(1, 10):
            words[f"{tens_word} {_UNITS[unit]}"] = tens_value + unit
    return words


NUMBER_WORDS = _build_number_words()

_INTEGER = r"-?\d+|" + "|".join(
    re.escape(word) for word in sorted(NUMBER_WORDS, key=len, reverse=True)
)


def normalize_text(text: str) -> str:
    cleaned = _NON_WORD.sub(" ", text.lower())
    return _WHITESPACE.sub(" ", cleaned).strip()


class PatternSyntaxError(ValueError):
    pass


class EntityType(Enum):
    ANY = "any"
    LIST = "list"
    INTEGER = "integer"


class EntityMatchMode(Enum):
    STRICT = "strict"
    FUZZY = "fuzzy"


@dataclass(frozen=True)
class PatternMatchingEntity:
    name: str
    type: EntityType = EntityType.ANY
    mode: EntityMatchMode = EntityMatchMode.STRICT
    phrases: tuple[str, ...] = ()

    @classmethod
    def create_any_entity(cls, name: str) -> "PatternMatchingEntity":
        return cls(name=name)

    @classmethod
    def create_list_entity(
        cls, name: str, mode: EntityMatchMode, *phrases: str
    ) -> "PatternMatchingEntity":
        if not phrases:
            raise ValueError(f"List entity '{name}' needs at least one phrase")
        return cls(name=name, type=EntityType.LIST, mode=mode, phrases=tuple(phrases))

    @classmethod
    def create_integer_entity(cls, name: str) -> "PatternMatchingEntity":
        return cls(name=name, type=EntityType.INTEGER)

    def value_regex(self) -> str:
        if self.type == EntityType.INTEGER:
            return _INTEGER
        if self.type == EntityType.LIST:
            normalized = {normalize_text(p) for p in self.phrases} - {""}
            choices = "|".join(re.escape(p) for p in sorted(normalized, key=len, reverse=True))
            if self.mode == EntityMatchMode.FUZZY:
                return f"{choices}|{_ANY_TEXT}"
            return choices
        return _ANY_TEXT

    def convert(self, matched: str) -> str:
        if self.type == EntityType.INTEGER and matched in NUMBER_WORDS:
            return str(NUMBER_WORDS[matched])
        return matched


class PatternMatchingIntent:
    def __init__(self, intent_id: str, *patterns: str) -> None:
        if not intent_id:
            raise ValueError("Intent id must not be empty")
        if not patterns:
            raise ValueError(f"Intent '{intent_id}' needs at least one pattern")
        self.intent_id = intent_id
        self.patterns = list(patterns)

    def __repr__(self) -> str:
        return f"PatternMatchingIntent({self.intent_id!r}, {len(self.patterns)} patterns)"


@dataclass(frozen=True)
class IntentMatch:
    intent_id: str
    entities: dict[str, str]
    pattern: str
    free_text_chars: int = 0

    def to_json(self, text: str) -> str:
        return json.dumps(
            {
                "query": text,
                "intentId": self.intent_id,
                "pattern": self.pattern,
                "entities": self.entities,
            }
        )


@dataclass(frozen=True)
class _Word:
    text: str


@dataclass(frozen=True)
class _Slot:
    key: str
    entity_name: str


@dataclass(frozen=True)
class _Optional:
    alternatives: tuple[tuple, ...]


class _PatternParser:
    def __init__(self, pattern: str) -> None:
        self._text = pattern
        self._pos = 0

    def parse(self) -> tuple:
        alternatives = self._parse_alternatives(closing=None)
        if len(alternatives) > 1:
            raise PatternSyntaxError(
                f"'|' is only allowed inside an optional group: {self._text!r}"
            )
        if not alternatives[0]:
            raise PatternSyntaxError("Pattern must not be empty")
        return alternatives[0]

    def _parse_alternatives(self, closing: str | None) -> list[tuple]:
        alternatives: list[list] = [[]]
        buffer: list[str] = []

        def flush() -> None:
            words = normalize_text("".join(buffer)).split()
            alternatives[-1].extend(_Word(w) for w in words)
            buffer.clear()

        while self._pos < len(self._text):
            char = self._text[self._pos]
            if closing is not None and char == closing:
                self._pos += 1
                flush()
                return [tuple(a) for a in alternatives]
            if char == "[":
                flush()
                self._pos += 1
                group = self._parse_alternatives(closing="]")
                alternatives[-1].append(_Optional(tuple(group)))
            elif char == "{":
                flush()
                alternatives[-1].append(self._parse_slot())
            elif char in "]}":
                raise PatternSyntaxError(
                    f"Unbalanced '{char}' at position {self._pos} in {self._text!r}"
                )
            elif char == "|":
                flush()
                alternatives.append([])
                self._pos += 1
            else:
                buffer.append(char)
                self._pos += 1

        if closing is not None:
            raise PatternSyntaxError(f"Missing '{closing}' in {self._text!r}")
        flush()
        return [tuple(a) for a in alternatives]

    def _parse_slot(self) -> _Slot:
        end = self._text.find("}", self._pos)
        if end < 0:
            raise PatternSyntaxError(f"Missing '}}' in {self._text!r}")
        content = self._text[self._pos + 1 : end]
        self._pos = end + 1
        name, _, discriminator = content.partition(":")
        name = name.strip()
        discriminator = discriminator.strip()
        if not name or not re.fullmatch(r"\w+", name):
            raise PatternSyntaxError(f"Invalid entity name {content!r} in {self._text!r}")
        key = f"{name}:{discriminator}" if discriminator else name
        return _Slot(key=key, entity_name=name)


class _CompiledPattern:
    def __init__(
        self,
        intent_id: str,
        pattern: str,
        entities: dict[str, PatternMatchingEntity],
    ) -> None:
        self.intent_id = intent_id
        self.pattern = pattern
        self._entities = entities
        self._groups: dict[str, tuple[str, PatternMatchingEntity]] = {}
        nodes = _PatternParser(pattern).parse()
        self._regex = re.compile(self._sequence(nodes))

    def _sequence(self, nodes: tuple) -> str:
        return "".join(self._node(node) for node in nodes)

    def _node(self, node) -> str:
        if isinstance(node, _Word):
            return re.escape(node.text) + " "
        if isinstance(node, _Slot):
            entity = self._entities.get(node.entity_name) or PatternMatchingEntity.create_any_entity(
                node.entity_name
            )
            group = f"g{len(self._groups)}"
            self._groups[group] = (node.key, entity)
            return f"(?P<{group}>{entity.value_regex()}) "
        choices = "|".join(self._sequence(alternative) for alternative in node.alternatives)
        return f"(?:{choices})?"

    def match(self, normalized: str) -> IntentMatch | None:
        found = self._regex.fullmatch(normalized + " ")
        if not found:
            return None
        entities: dict[str, str] = {}
        free_text_chars = 0
        for group, (key, entity) in self._groups.items():
            value = found.group(group)
            if value is None or key in entities:
                continue
            entities[key] = entity.convert(value)
            if entity.type == EntityType.ANY:
                free_text_chars += len(value)
        return IntentMatch(
            intent_id=self.intent_id,
            entities=entities,
            pattern=self.pattern,
            free_text_chars=free_text_chars,
        )


@dataclass
class PatternMatchingModel:
    model_id: str
    intents: list[PatternMatchingIntent] = field(default_factory=list)
    entities: list[PatternMatchingEntity] = field(default_factory=list)

    def __post_init__(self) -> None:
        self._compiled: list[_CompiledPattern] = []
        self._compiled_key: tuple | None = None

    def _compile(self) -> list[_CompiledPattern]:
        key = (
            tuple((i.intent_id, tuple(i.patterns)) for i in self.intents),
            tuple(self.entities),
        )
        if key != self._compiled_key:
            entities = {entity.name: entity for entity in self.entities}
            self._compiled = [
                _CompiledPattern(intent.intent_id, pattern, entities)
                for intent in self.intents
                for pattern in intent.patterns
            ]
            self._compiled_key = key
            logger.debug(
                "Compiled %d patterns for model '%s'", len(self._compiled), self.model_id
            )
        return self._compiled

    def match(self, text: str) -> IntentMatch | None:
        normalized = normalize_text(text)
        if not normalized:
            return None
        best: IntentMatch | None = None
        for compiled in self._compile():
            candidate = compiled.match(normalized)
            if candidate is None:
                continue
            if best is None or candidate.free_text_chars < best.free_text_chars:
                best = candidate
        return best

    @classmethod
    def from_dict(cls, data: dict) -> "PatternMatchingModel":
        try:
            model = cls(model_id=data["modelId"])
            for intent in data.get("intents", []):
                model.intents.append(PatternMatchingIntent(intent["id"], *intent["patterns"]))
            for entity in data.get("entities", []):
                model.entities.append(_entity_from_dict(entity))
        except (KeyError, TypeError) as exc:
            raise ValueError(f"Invalid pattern model definition: {exc}") from exc
        model._compile()
        return model


def _entity_from_dict(data: dict) -> PatternMatchingEntity:
    entity_type = EntityType(data.get("type", "any"))
    if entity_type == EntityType.LIST:
        mode = EntityMatchMode(data.get("mode", "strict"))
        return PatternMatchingEntity.create_list_entity(data["name"], mode, *data["phrases"])
    if entity_type == EntityType.INTEGER:
        return PatternMatchingEntity.create_integer_entity(data["name"])
    return PatternMatchingEntity.create_any_entity(data["name"])


def load_pattern_model(path: str | Path) -> PatternMatchingModel:
    with open(path, encoding="utf-8") as f:
        data = json.load(f)
    model = PatternMatchingModel.from_dict(data)
    logger.info(
        "Loaded pattern model '%s' (%d intents, %d entities) from %s",
        model.model_id, len(model.intents), len(model.entities), path,
    )
    return model
