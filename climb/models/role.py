"""
climb/models/role.py

Structured view of a job posting, as extracted from model output.
"""

from typing import List

from pydantic import Field

from climb.models import CamelModel


class RoleParsed(CamelModel):
    """
    Parsed job role.

    Text fields may be omitted but never null; every list field is always
    present, and a fallback parse leaves them empty rather than absent.
    """

    title: str = ""
    company: str = ""
    location: str = ""
    responsibilities: List[str] = Field(default_factory=list)
    requirements: List[str] = Field(default_factory=list)
    keywords: List[str] = Field(default_factory=list)
    must_haves: List[str] = Field(default_factory=list)
    nice_to_haves: List[str] = Field(default_factory=list)

    @classmethod
    def empty(cls) -> "RoleParsed":
        return cls()
