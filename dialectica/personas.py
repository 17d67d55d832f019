"""Static persona table: id -> role-defining instruction."""

import logging
from collections.abc import Iterable, Iterator, Mapping
from types import MappingProxyType
from typing import Any

from dialectica.errors import DuplicatePersonaError, PersonaNotFound
from dialectica.models import Persona

logger = logging.getLogger(__name__)

DEFAULT_PERSONAS: tuple[Persona, ...] = (
    Persona(
        id="CHOLA",
        display_name="CHOLA (Roots)",
        instruction=(
            "You are the agent 'CHOLA', representing tradition, community roots and established wisdom. "
            "Analyze the user's input through foundational history, cultural heritage and practical, "
            "non-digital values. Emphasize stability, historical context and the importance of community "
            "structure. Answer concisely in at most two paragraphs."
        ),
        tag={"role": "roots", "color": "chola"},
    ),
    Persona(
        id="MALANDRA",
        display_name="MALANDRA (Disrupt)",
        instruction=(
            "You are the agent 'MALANDRA', representing disruption, skepticism and street-level "
            "resourcefulness. Analyze the user's input by challenging established norms, exposing hidden "
            "risks and favoring fast, adaptive, unconventional strategies. Be provocative but insightful. "
            "Answer concisely in at most two paragraphs."
        ),
        tag={"role": "disrupt", "color": "malandra"},
    ),
    Persona(
        id="FRESA",
        display_name="FRESA (Tech)",
        instruction=(
            "You are the agent 'FRESA', representing high technology, global trends and polished business "
            "strategy. Analyze the user's input for scalability, integration of cutting-edge technology and "
            "alignment with modern, optimized solutions. Be forward-looking and highly professional. "
            "Answer concisely in at most two paragraphs."
        ),
        tag={"role": "tech", "color": "fresa"},
    ),
)


class PersonaRegistry:
    """Read-only lookup of personas by id. Duplicate ids are rejected at load."""

    def __init__(self, personas: Iterable[Persona]) -> None:
        table: dict[str, Persona] = {}
        for persona in personas:
            if persona.id in table:
                raise DuplicatePersonaError(f"Duplicate persona id: {persona.id}")
            table[persona.id] = persona
        self._personas: Mapping[str, Persona] = MappingProxyType(table)
        logger.debug("Loaded %d personas: %s", len(table), ", ".join(table))

    @classmethod
    def from_config(cls, entries: Iterable[Mapping[str, Any]]) -> "PersonaRegistry":
        """Build from settings.yaml persona entries (id, instruction, display_name?, tag?)."""
        return cls(
            Persona(
                id=str(entry["id"]),
                display_name=str(entry.get("display_name") or entry["id"]),
                instruction=str(entry["instruction"]),
                tag=dict(entry.get("tag") or {}),
            )
            for entry in entries
        )

    def resolve(self, persona_id: str) -> Persona:
        try:
            return self._personas[persona_id]
        except KeyError:
            raise PersonaNotFound(persona_id) from None

    def ids(self) -> list[str]:
        return list(self._personas)

    def __contains__(self, persona_id: object) -> bool:
        return persona_id in self._personas

    def __iter__(self) -> Iterator[Persona]:
        return iter(self._personas.values())

    def __len__(self) -> int:
        return len(self._personas)


def default_registry() -> PersonaRegistry:
    return PersonaRegistry(DEFAULT_PERSONAS)
