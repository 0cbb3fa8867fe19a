# ruff: noqa: E501
import datetime as dt
import textwrap
from decimal import Decimal

import pytest

from spaarapp.config import ImportSchema, LocaleConfig
from spaarapp.errors import ParseError, RowParseError
from spaarapp.models import TransactionType
from spaarapp.normalizers import (
    detect_delimiter,
    normalize,
    parse_amount,
    parse_date,
    preview,
    validate_structure,
)


def _dedent(s: str) -> str:
    # Keep internal newlines, but normalize indentation for readability.
    return textwrap.dedent(s).lstrip("\n").rstrip() + "\n"


RABO_CSV = _dedent(
    """
    "Datum";"Naam/Omschrijving";"Rekening";"Tegenrekening";"Code";"Af/Bij";"Bedrag";"MutatieSoort";"Mededelingen"
    "01-02-2024";"Albert Heijn 1234";"NL01RABO0123456789";"NL99INGB0000000001";"BA";"Af";"1.234,56";"Betaalautomaat";"Pasvolgnr 001"
    "02-02-2024";"Werkgever BV";"NL01RABO0123456789";"NL55ABNA0000000002";"OV";"Bij";"2.500,00";"Overschrijving";"Salaris februari"
    """
)


# ---- Field parsing -----------------------------------------------------------


@pytest.mark.parametrize(
    "raw,expected",
    [
        ("1.234,56", Decimal("1234.56")),
        ("€ 87,45", Decimal("87.45")),
        ("-12,00", Decimal("-12.00")),
        ("12,00-", Decimal("-12.00")),
        ("(5,00)", Decimal("-5.00")),
        ("87.45", Decimal("87.45")),
        ("1.234", Decimal("1234")),
        ("1.234.567,8", Decimal("1234567.8")),
    ],
)
def test_parse_amount_dutch_locale(raw, expected):
    assert parse_amount(raw) == expected


def test_parse_amount_dot_decimal_locale():
    loc = LocaleConfig(decimal_separator=".", thousands_separator=",")
    assert parse_amount("1,234.56", loc) == Decimal("1234.56")


@pytest.mark.parametrize(
    "raw",
    ["", "   ", "abc", "12,3,4", "1.2.3,4x", "0,004", "1,234.56", "1.23.456,00", "12.34.56", "12,"],
)
def test_parse_amount_rejects_garbage(raw):
    with pytest.raises(RowParseError):
        parse_amount(raw)


def test_parse_date_uses_fallback_formats():
    formats = ImportSchema().date_formats
    assert parse_date("15-01-2024", formats) == dt.date(2024, 1, 15)
    assert parse_date("20240115", formats) == dt.date(2024, 1, 15)
    assert parse_date("2024-01-15", formats) == dt.date(2024, 1, 15)
    assert parse_date("15/01/2024", formats) == dt.date(2024, 1, 15)
    with pytest.raises(RowParseError):
        parse_date("32-13-2024", formats)


def test_date_format_accepts_human_pattern():
    schema = ImportSchema(date_format="YYYY-MM-DD")
    assert schema.date_format == "%Y-%m-%d"
    assert schema.date_formats[0] == "%Y-%m-%d"


@pytest.mark.parametrize(
    "header,expected",
    [
        ("Datum,Omschrijving,Bedrag", ","),
        ("Datum;Omschrijving;Bedrag", ";"),
        ("Datum|Omschrijving|Bedrag", "|"),
        ("Datum\tOmschrijving\tBedrag", "\t"),
        ('"Naam, Omschrijving";Bedrag;Datum', ";"),
        ("Datum,Omschrijving;Bedrag", ","),
    ],
)
def test_detect_delimiter(header, expected):
    assert detect_delimiter(header) == expected


# ---- Whole-file normalization ------------------------------------------------


def test_rabobank_export_is_normalized():
    batch = normalize(RABO_CSV)

    assert batch.delimiter == ";"
    assert batch.total_rows == 2
    assert batch.errors == []
    assert batch.warnings == []

    groceries, salary = batch.candidates
    assert groceries.source_row == 1
    assert groceries.date == dt.date(2024, 2, 1)
    assert groceries.amount == Decimal("-1234.56")
    assert groceries.transaction_type is TransactionType.DEBIT
    assert groceries.description == "Albert Heijn 1234"
    assert groceries.own_account == "NL01RABO0123456789"
    assert groceries.counterparty_account == "NL99INGB0000000001"
    assert groceries.kind == "Betaalautomaat"
    assert groceries.notes == "Pasvolgnr 001"
    assert groceries.tags == ("pinbetaling",)

    assert salary.amount == Decimal("2500.00")
    assert salary.transaction_type is TransactionType.CREDIT
    assert salary.notes == "Salaris februari"
    assert salary.is_recurring is False


def test_unquoted_decimal_comma_is_repaired_with_warning():
    csv_text = _dedent(
        """
        Datum,Omschrijving,Bedrag,Af/Bij
        15-01-2024,Albert Heijn,87,45,Af
        15-01-2024,Albert Heijn,87,45,Af
        """
    )

    batch = normalize(csv_text)

    assert [c.amount for c in batch.candidates] == [Decimal("-87.45"), Decimal("-87.45")]
    assert batch.errors == []
    assert batch.warnings == [
        "row 1: unquoted decimal comma in amount was repaired",
        "row 2: unquoted decimal comma in amount was repaired",
    ]


def test_quoted_fields_keep_delimiters_newlines_and_escaped_quotes():
    csv_text = (
        "Datum,Omschrijving,Bedrag,Af/Bij\n"
        '15-01-2024,"Bakker ""De Korenbloem"", Utrecht\nfiliaal 2","3,20",Af\n'
    )

    (cand,) = normalize(csv_text).candidates

    assert cand.description == 'Bakker "De Korenbloem", Utrecht filiaal 2'
    assert cand.amount == Decimal("-3.20")


def test_direction_column_wins_over_literal_sign():
    csv_text = _dedent(
        """
        Datum;Omschrijving;Bedrag;Af/Bij
        15-01-2024;Terugbetaling;-10,00;Bij
        15-01-2024;Jumbo;10,00;Af
        15-01-2024;Onbekend;-5,00;X
        15-01-2024;Geen richting;7,50;
        """
    )

    batch = normalize(csv_text)

    assert [c.amount for c in batch.candidates] == [
        Decimal("10.00"),
        Decimal("-10.00"),
        Decimal("-5.00"),
        Decimal("7.50"),
    ]
    assert len(batch.warnings) == 2
    assert batch.warnings[0].startswith("row 1: direction 'Bij' overrides amount sign")
    assert batch.warnings[1].startswith("row 3: unknown direction marker 'X'")
    # Sign invariant: debit iff negative
    for c in batch.candidates:
        assert (c.transaction_type is TransactionType.DEBIT) == (c.amount < 0)


def test_row_errors_are_collected_with_one_based_numbers():
    csv_text = _dedent(
        """
        Datum,Omschrijving,Bedrag,Af/Bij

        15-01-2024,Jumbo,"12,50",Af

        32-13-2024,Jumbo,"12,50",Af
        16-01-2024,Jumbo,abc,Af
        17-01-2024,Jumbo,"0,00",Af
        """
    )

    batch = normalize(csv_text)

    assert batch.total_rows == 4
    assert len(batch.candidates) == 1
    assert [e.row for e in batch.errors] == [2, 3, 4]
    assert "unparseable date" in batch.errors[0].reason
    assert "invalid amount" in batch.errors[1].reason
    assert batch.errors[2].reason == "amount is zero"


def test_sub_cent_and_foreign_grouped_amounts_are_row_errors():
    csv_text = _dedent(
        """
        Datum;Omschrijving;Bedrag;Af/Bij
        15-01-2024;Jumbo;125,15;Af
        16-01-2024;Jumbo;0,004;Af
        17-01-2024;Webshop;1,234.56;Af
        """
    )

    batch = normalize(csv_text)

    assert [c.amount for c in batch.candidates] == [Decimal("-125.15")]
    assert [e.row for e in batch.errors] == [2, 3]
    assert all("invalid amount" in e.reason for e in batch.errors)


def test_zero_valid_rows_is_a_file_level_failure():
    csv_text = _dedent(
        """
        Datum,Omschrijving,Bedrag,Af/Bij
        nope,Jumbo,"12,50",Af
        15-01-2024,Jumbo,,Af
        """
    )

    with pytest.raises(ParseError) as excinfo:
        normalize(csv_text)

    assert excinfo.value.total_rows == 2
    assert [e.row for e in excinfo.value.row_errors] == [1, 2]


@pytest.mark.parametrize(
    "csv_text,message",
    [
        ("", "header row is required"),
        ("\n\n", "header row is required"),
        (",,,\n", "no header row"),
        (";;\n\n;;\n", "no header row"),
        ("Datum,Omschrijving,Bedrag\n", "no data rows found"),
        ("Datum,Omschrijving\n15-01-2024,Jumbo\n", "missing required columns for: amount"),
    ],
)
def test_file_level_parse_errors(csv_text, message):
    with pytest.raises(ParseError, match=message):
        normalize(csv_text)


def test_bytes_input_with_bom_and_invalid_encoding():
    good = "\ufeffDatum,Omschrijving,Bedrag\n15-01-2024,Café,\"2,50\"\n".encode()
    (cand,) = normalize(good).candidates
    assert cand.description == "Café"
    assert cand.amount == Decimal("2.50")

    with pytest.raises(ParseError, match="not valid UTF-8"):
        normalize(b"Datum,Bedrag\n15-01-2024,\xff\n")


def test_column_indices_override_aliases():
    schema = ImportSchema(column_indices={"date": 2, "amount": 0, "description": 1})
    csv_text = _dedent(
        """
        a,b,c
        "-4,00",Kiosk,2024-03-01
        """
    )

    (cand,) = normalize(csv_text, schema).candidates

    assert cand.date == dt.date(2024, 3, 1)
    assert cand.amount == Decimal("-4.00")
    assert cand.description == "Kiosk"


def test_description_falls_back_to_name_then_notes():
    csv_text = _dedent(
        """
        Datum;Naam tegenpartij;Omschrijving;Bedrag;Mededelingen
        15-01-2024;Bakkerij Jansen;;-3,00;
        15-01-2024;;;-4,00;Kenmerk 12345
        15-01-2024;;;-5,00;
        """
    )

    batch = normalize(csv_text)

    assert [c.description for c in batch.candidates] == [
        "Bakkerij Jansen",
        "Kenmerk 12345",
        "Onbekende transactie",
    ]


def test_tags_and_recurring_detection():
    csv_text = _dedent(
        """
        Datum;Naam/Omschrijving;Af/Bij;Bedrag;MutatieSoort;Mededelingen
        01-03-2024;Zilveren Kruis;Af;135,20;Incasso;Maandelijkse premie
        02-03-2024;Bol.com;Af;25,00;iDEAL;Online bestelling
        03-03-2024;Geldautomaat Utrecht;Af;50,00;Geldautomaat;
        """
    )

    insurance, webshop, atm = normalize(csv_text).candidates

    assert insurance.tags == ("automatische incasso",)
    assert insurance.is_recurring is True
    assert insurance.recurring_frequency == "maandelijks"

    assert webshop.tags == ("iDEAL", "online")
    assert webshop.is_recurring is False
    assert webshop.recurring_frequency is None

    assert atm.tags == ("contant",)


def test_parallel_normalization_matches_sequential():
    lines = ["Datum;Omschrijving;Bedrag;Af/Bij"]
    for i in range(1, 1301):
        if i % 97 == 0:
            lines.append(f"99-99-2024;Regel {i};1,00;Af")
        else:
            day = i % 28 + 1
            lines.append(f"{day:02d}-01-2024;Regel {i};{i},{i % 100:02d};{'Af' if i % 2 else 'Bij'}")
    csv_text = "\n".join(lines) + "\n"

    progress: list[tuple[int, int]] = []
    seq = normalize(csv_text)
    par = normalize(csv_text, workers=4, on_progress=lambda done, total: progress.append((done, total)))

    assert par.candidates == seq.candidates
    assert par.errors == seq.errors
    assert [e.row for e in par.errors] == [97 * k for k in range(1, 14)]
    assert progress[-1] == (1300, 1300)
    assert [p[0] for p in progress] == sorted(p[0] for p in progress)


def test_sequential_progress_reports_every_row():
    calls: list[tuple[int, int]] = []
    normalize(RABO_CSV, on_progress=lambda done, total: calls.append((done, total)))
    assert calls == [(1, 2), (2, 2)]


def test_validate_structure_and_preview():
    assert validate_structure(RABO_CSV) == []
    assert validate_structure("Datum,Omschrijving\n") == ["amount"]
    assert validate_structure("Bedrag;Omschrijving\n") == ["date"]

    batch = preview(RABO_CSV, limit=1)
    assert len(batch.candidates) == 1
    assert batch.total_rows == 2
