"""
CSV/Excel import adapter: header mapping, coercion and row validation.
"""
import pandas as pd
import pytest

from client_pricing.adapters.import_adapter import CsvPriceRecordAdapter


def write_csv(path, text):
    path.write_text(text, encoding='utf-8')
    return path


def test_headers_are_mapped_case_and_space_insensitive(tmp_path):
    path = write_csv(tmp_path / 'sales.csv', (
        "Product ID,Unit Price,QTY,Sold Date,Order Number,Contract Ref,Original Price,Notes\n"
        "P2,500,2,2025-01-05,SO-1,FW-9,640,first order\n"
    ))

    records = CsvPriceRecordAdapter(path).load()

    assert len(records) == 1
    record = records[0]
    assert record.product_id == 'P2'
    assert record.price == pytest.approx(500.0)
    assert record.quantity == 2
    assert record.sold_date == '2025-01-05'
    assert record.order_id == 'SO-1'
    assert record.contract_ref == 'FW-9'
    assert record.original_price == pytest.approx(640.0)
    assert record.notes == 'first order'


def test_optional_columns_may_be_absent(tmp_path):
    path = write_csv(tmp_path / 'sales.csv', "productId,price\nP1,800\n")

    record = CsvPriceRecordAdapter(path).load()[0]

    assert record.quantity == 1
    assert record.sold_date is None
    assert record.original_price is None


def test_validate_reports_row_problems(tmp_path):
    path = write_csv(tmp_path / 'sales.csv', (
        "productId,price,quantity,soldDate\n"
        "P1,800,1,2025-01-05\n"
        ",100,1,2025-01-05\n"
        "P2,abc,1,2025-01-05\n"
        "P3,0,0,05/01/2025\n"
    ))

    problems = CsvPriceRecordAdapter(path).validate()

    assert "Row 2: missing product id" in problems
    assert "Row 3: missing or non-numeric price" in problems
    assert "Row 4: price must be greater than 0" in problems
    assert "Row 4: quantity must be at least 1" in problems
    assert any(p.startswith("Row 4: sold date") for p in problems)
    assert not any(p.startswith("Row 1") for p in problems)


def test_missing_required_column(tmp_path):
    path = write_csv(tmp_path / 'sales.csv', "productId,quantity\nP1,2\n")
    with pytest.raises(ValueError):
        CsvPriceRecordAdapter(path).load()


def test_missing_file(tmp_path):
    with pytest.raises(FileNotFoundError):
        CsvPriceRecordAdapter(tmp_path / 'nope.csv').load()


def test_excel_file(tmp_path):
    path = tmp_path / 'sales.xlsx'
    pd.DataFrame([
        {'Product ID': 'P4', 'Price': 95.5, 'Quantity': 3, 'Sold Date': '2025-01-20'},
    ]).to_excel(path, index=False)

    record = CsvPriceRecordAdapter(path).load()[0]

    assert record.product_id == 'P4'
    assert record.price == pytest.approx(95.5)
    assert record.quantity == 3


def test_adapter_output_feeds_importer(tmp_path, importer, repository):
    path = write_csv(tmp_path / 'sales.csv', (
        "productId,price,soldDate\n"
        "P2,500,2025-01-05\n"
        "P9,10,2025-01-05\n"
    ))

    result = importer.process_import('C2', CsvPriceRecordAdapter(path).load(), source='csv')

    assert result.imported_count == 1
    assert result.skipped_count == 1
    assert repository.list_history(client_id='C2')[0].source == 'csv'
