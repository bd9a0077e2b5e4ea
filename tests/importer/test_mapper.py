from __future__ import annotations

from datetime import date, datetime

import pytest

from personnel_app.importer.pipeline.mapper import clean_text, map_row, map_rows, parse_date


def test_map_row_reads_canonical_headers():
    record = map_row(
        {
            "Фамилия": " Петров ",
            "Имя": "Пётр",
            "Отчество": "Петрович",
            "ИНН Сотрудник": "500100732259",
            "СНИЛС Сотрудник": "112-233-445 95",
            "КИГ": "ab 1234567",
            "Срок окончания КИГ": "31.12.2027",
            "Гражданство": "Узбекистан",
            "Дата рождения": datetime(1991, 3, 4),
            "Должность": "сварщик",
            "Организация": "ООО Генподряд",
            "ИНН": 7701234567,
            "КПП": "770101001",
        },
        row_index=3,
    )

    assert record.row_index == 3
    assert record.last_name == "Петров"
    assert record.first_name == "Пётр"
    assert record.middle_name == "Петрович"
    assert record.tax_id == "500100732259"
    assert record.insurance_id == "112-233-445 95"
    assert record.work_card_id == "ab 1234567"
    assert record.work_card_expiry == date(2027, 12, 31)
    assert record.citizenship == "Узбекистан"
    assert record.birth_date == date(1991, 3, 4)
    assert record.position == "сварщик"
    assert record.organization_tax_id == "7701234567"
    assert record.organization_sub_code == "770101001"


def test_map_row_falls_back_to_aliases():
    record = map_row(
        {
            "lastName": "Smith",
            "firstName": "John",
            "employee_inn": "500100732259",
            "snils": "11223344595",
            "kigEndDate": "2027-01-15",
            "birthDate": "15/01/1990",
            "counterparty_inn": "7701234567",
            "counterparty_kpp": "770101001",
        },
        row_index=1,
    )

    assert record.last_name == "Smith"
    assert record.first_name == "John"
    assert record.tax_id == "500100732259"
    assert record.insurance_id == "11223344595"
    assert record.work_card_expiry == date(2027, 1, 15)
    assert record.birth_date == date(1990, 1, 15)
    assert record.organization_tax_id == "7701234567"
    assert record.organization_sub_code == "770101001"


def test_canonical_header_wins_over_alias():
    record = map_row({"Фамилия": "Канон", "last_name": "Alias"}, row_index=1)
    assert record.last_name == "Канон"


def test_map_row_splits_full_name_across_adjacent_cells():
    record = map_row(
        {"ФИО": "Сидоров", "column_2": "Семён", "column_3": "Семёнович", "ИНН Сотрудник": "500100732259"},
        row_index=1,
    )
    assert (record.last_name, record.first_name, record.middle_name) == ("Сидоров", "Семён", "Семёнович")


def test_map_row_splits_full_name_in_single_cell():
    record = map_row({"ФИО": "Сидоров Семён Семёнович"}, row_index=1)
    assert (record.last_name, record.first_name, record.middle_name) == ("Сидоров", "Семён", "Семёнович")


def test_full_name_does_not_consume_known_columns():
    record = map_row({"ФИО": "Сидоров", "ИНН Сотрудник": "500100732259"}, row_index=1)
    assert record.last_name == "Сидоров"
    assert record.first_name is None
    assert record.tax_id == "500100732259"


def test_explicit_name_columns_take_precedence_over_full_name():
    record = map_row({"Фамилия": "Орлов", "Имя": "Олег", "ФИО": "Другой Человек"}, row_index=1)
    assert record.last_name == "Орлов"
    assert record.first_name == "Олег"


def test_map_row_never_raises_for_garbage():
    record = map_row({"Дата рождения": "not a date", "Срок окончания КИГ": True, "Фамилия": "   "}, row_index=9)
    assert record.birth_date is None
    assert record.work_card_expiry is None
    assert record.last_name is None


def test_map_rows_assigns_one_based_indices():
    records = map_rows([{"Фамилия": "А"}, {"Фамилия": "Б"}, {}])
    assert [record.row_index for record in records] == [1, 2, 3]
    assert records[2].last_name is None


@pytest.mark.parametrize(
    "value,expected",
    [
        (" Иванов. ", "Иванов"),
        ("ООО Ромашка;", "ООО Ромашка"),
        (500100732259.0, "500100732259"),
        (7701234567, "7701234567"),
        ("", None),
        (None, None),
        ("...", None),
    ],
)
def test_clean_text(value, expected):
    assert clean_text(value) == expected


@pytest.mark.parametrize(
    "value,expected",
    [
        ("17.05.1990", date(1990, 5, 17)),
        ("17/05/1990", date(1990, 5, 17)),
        ("1990-05-17", date(1990, 5, 17)),
        ("17.05.1990.", date(1990, 5, 17)),
        (date(1990, 5, 17), date(1990, 5, 17)),
        (datetime(1990, 5, 17, 12, 30), date(1990, 5, 17)),
        (33010, date(1990, 5, 17)),
        ("33010", date(1990, 5, 17)),
        ("31.02.1990", None),
        ("yesterday", None),
        (0, None),
        (-5, None),
        (None, None),
    ],
)
def test_parse_date(value, expected):
    assert parse_date(value) == expected
