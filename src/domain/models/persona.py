"""Persona domain models.

A persona is a named literary style descriptor. Two personas are drawn
per session; they flavour the generator's output (without ever being
named in it), are the candidates for the post-session style match, and
are the speakers of a duologue.
"""

from typing import Tuple

from pydantic import BaseModel, Field, model_validator


class Persona(BaseModel):
    """Named literary style descriptor."""

    model_config = {"frozen": True}

    name: str = Field(min_length=1)
    description: str = Field(description="One-sentence style statement")


class PersonaPair(BaseModel):
    """The two personas drawn for a session (immutable, distinct names)."""

    model_config = {"frozen": True}

    first: Persona
    second: Persona

    @model_validator(mode="after")
    def distinct_personas(self) -> "PersonaPair":
        if self.first.name == self.second.name:
            raise ValueError("persona pair must contain two different personas")
        return self

    @property
    def names(self) -> Tuple[str, str]:
        return (self.first.name, self.second.name)

    def other(self, persona: Persona) -> Persona:
        """Return the persona of the pair that is not `persona`."""
        return self.second if persona.name == self.first.name else self.first
