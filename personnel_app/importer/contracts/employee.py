"""Canonical employee import contract definitions.

Spreadsheet headers are matched case-sensitively: first the canonical
(Russian) header, then the legacy aliases in declaration order. The combined
full-name header is handled separately by the record mapper.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Mapping, Tuple

FieldKind = Literal["text", "identifier", "date"]


@dataclass(frozen=True)
class FieldSpec:
    """Metadata describing a canonical import field."""

    name: str
    header: str
    description: str
    required: bool = False
    aliases: Tuple[str, ...] = ()
    kind: FieldKind = "text"

    def headers(self) -> Tuple[str, ...]:
        """Return the canonical header plus aliases in lookup order."""

        return (self.header, *self.aliases)


EMPLOYEE_CANONICAL_FIELDS: Tuple[FieldSpec, ...] = (
    FieldSpec(
        name="last_name",
        header="Фамилия",
        description="Employee surname.",
        required=True,
        aliases=("last_name", "lastName"),
    ),
    FieldSpec(
        name="first_name",
        header="Имя",
        description="Employee given name.",
        required=True,
        aliases=("first_name", "firstName"),
    ),
    FieldSpec(
        name="middle_name",
        header="Отчество",
        description="Employee patronymic.",
        aliases=("middle_name", "middleName"),
    ),
    FieldSpec(
        name="tax_id",
        header="ИНН Сотрудник",
        description="Employee personal tax number (INN), 10 or 12 digits.",
        required=True,
        aliases=("ИНН сотрудника", "employee_inn", "inn_employee"),
        kind="identifier",
    ),
    FieldSpec(
        name="insurance_id",
        header="СНИЛС Сотрудник",
        description="Social insurance number (SNILS), 11 digits.",
        aliases=("СНИЛС", "snils"),
        kind="identifier",
    ),
    FieldSpec(
        name="work_card_id",
        header="КИГ",
        description="Foreign worker card number (KIG): two Latin letters and seven digits.",
        aliases=("kig",),
        kind="identifier",
    ),
    FieldSpec(
        name="work_card_expiry",
        header="Срок окончания КИГ",
        description="Foreign worker card expiry date.",
        aliases=("kig_end_date", "kigEndDate"),
        kind="date",
    ),
    FieldSpec(
        name="citizenship",
        header="Гражданство",
        description="Citizenship name or one of its synonyms.",
        aliases=("citizenship",),
    ),
    FieldSpec(
        name="birth_date",
        header="Дата рождения",
        description="Date of birth.",
        aliases=("birth_date", "birthDate"),
        kind="date",
    ),
    FieldSpec(
        name="position",
        header="Должность",
        description="Position title; created on import when unknown.",
        aliases=("position",),
    ),
    FieldSpec(
        name="organization_name",
        header="Организация",
        description="Counterparty display name (informational).",
        aliases=("Наименование организации", "organization"),
    ),
    FieldSpec(
        name="organization_tax_id",
        header="ИНН",
        description="Counterparty tax number (INN) the employee is registered under.",
        required=True,
        aliases=("ИНН организации", "inn", "counterparty_inn"),
        kind="identifier",
    ),
    FieldSpec(
        name="organization_sub_code",
        header="КПП",
        description="Counterparty registration reason code (KPP).",
        aliases=("КПП организации", "kpp", "counterparty_kpp"),
        kind="identifier",
    ),
)

FULL_NAME_HEADERS: Tuple[str, ...] = ("ФИО", "full_name", "fio")
NAME_FIELDS: Tuple[str, ...] = ("last_name", "first_name", "middle_name")


def get_employee_field_specs() -> Tuple[FieldSpec, ...]:
    """Return the canonical employee field specifications."""

    return EMPLOYEE_CANONICAL_FIELDS


def get_employee_field_map() -> Mapping[str, FieldSpec]:
    return {field.name: field for field in EMPLOYEE_CANONICAL_FIELDS}


def get_employee_template_headers() -> Tuple[str, ...]:
    """Canonical header row for a blank import workbook."""

    return tuple(field.header for field in EMPLOYEE_CANONICAL_FIELDS)
