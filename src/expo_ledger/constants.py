"""Enumerations shared across Expo Ledger modules.

Centralises domain constants so that the data access layer (DAL), business
logic layer (BLL), and the CLI rely on a single source of truth for
collection names and the closed vocabularies used on registration forms.
"""

from __future__ import annotations

from enum import Enum


# Central schema version expected by all layers when validating workbooks.
EXPECTED_SCHEMA_VERSION = "1.0.0"

# The only state whose districts, blocks and local units come from the
# structured geography tree. Every other state is entered as free text.
STRUCTURED_STATE = "Odisha"

# Value stored in ``location.state`` for stalls from outside the structured state.
OTHER_STATE = "Other"


class CollectionName(str, Enum):
    """Enumerate the document collections managed by the DAL."""

    EXHIBITIONS = "exhibitions"
    REGISTRATIONS = "registrations"
    DAILY_SALES = "dailySales"
    SETTINGS = "settings"


class OrganizationType(str, Enum):
    """Enumerate the organisation kinds a stall can register under."""

    SHG = "SHG"
    PG = "PG"
    PC = "PC"
    PROPRIETOR = "Proprietor"
    PVT_COMPANY = "Pvt Company"
    OTHERS = "Others"


class Sponsor(str, Enum):
    """Enumerate the agencies that sponsor a stall."""

    DRDA_DSMS = "DRDA/DSMS"
    KVIC = "KVIC"
    HCI = "H&CI"
    NABARD = "NABARD"
    MVSN = "MVSN"
    OTHERS = "Others"


class Gender(str, Enum):
    """Enumerate participant genders recorded at registration."""

    MALE = "male"
    FEMALE = "female"
    OTHER = "other"


__all__ = [
    "EXPECTED_SCHEMA_VERSION",
    "STRUCTURED_STATE",
    "OTHER_STATE",
    "CollectionName",
    "OrganizationType",
    "Sponsor",
    "Gender",
]
