from __future__ import annotations

import pytest

from finance_tracker.errors import RequiredColumnsMissingError
from finance_tracker.ingest.detect import detect_dialect, load_raw_rows
from finance_tracker.models import StatementDialect

BB_HEADER = '"Data","Lançamento","Detalhes","N° documento","Valor","Tipo Lançamento"'


@pytest.mark.parametrize(
    "text",
    [
        BB_HEADER + "\n",
        "\ufeff" + BB_HEADER + "\n",
        "\n\n  \n" + BB_HEADER + "\n",
        "data,lancamento,detalhes,n documento,valor,tipo lancamento\n",
        "DATA,LANÇAMENTO,DETALHES\n",
    ],
)
def test_bank_signature_detected(text):
    assert detect_dialect(text) is StatementDialect.BANK


@pytest.mark.parametrize(
    "text",
    [
        "",
        "   \n",
        "Data,Descrição,Valor\n",
        "Data,Lançamento\n",
        "Lançamento,Data,Detalhes\n",
        "Data;Lançamento;Detalhes;Valor\n",
        "\x00\x01\x02 garbage",
        '"unterminated,quote\n',
    ],
)
def test_everything_else_is_generic(text):
    assert detect_dialect(text) is StatementDialect.GENERIC


def test_load_raw_rows_dispatches_on_dialect():
    bank = BB_HEADER + '\n"02/07/2025","Pix - Enviado","Padaria","1","-25,90","Saída"\n'
    dialect, rows, errors = load_raw_rows(bank)
    assert dialect is StatementDialect.BANK
    assert rows[0].dialect is StatementDialect.BANK
    assert errors == []

    dialect, rows, _ = load_raw_rows("Data,Descrição,Valor\n15/07/2025,Mercado,10.00\n")
    assert dialect is StatementDialect.GENERIC
    assert rows[0].description == "Mercado"


def test_load_raw_rows_propagates_fatal_errors():
    with pytest.raises(RequiredColumnsMissingError):
        load_raw_rows("Foo,Bar\n1,2\n")
