"""
Pembaca file impor (CSV atau XLSX). Baris pertama adalah header; nama kolom
dinormalisasi ke huruf kecil. Hasilnya list (nomor_baris, dict) dengan
nomor baris sesuai tampilan spreadsheet (data mulai baris 2).
"""
import csv
from datetime import date, datetime
from io import TextIOWrapper
from zipfile import BadZipFile

from flask import current_app
from openpyxl import load_workbook
from openpyxl.utils.exceptions import InvalidFileException

from app.errors import ValidationError

UNREADABLE_ERRORS = (UnicodeDecodeError, csv.Error, BadZipFile, InvalidFileException)


def _cell_text(value):
    if value is None:
        return ''
    if isinstance(value, datetime):
        return value.date().isoformat()
    if isinstance(value, date):
        return value.isoformat()
    # Angka dari Excel sering datang sebagai float (mis. 2024.0)
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def _numbered(headers, records):
    parsed = []
    for line_no, record in enumerate(records, start=2):
        row = {header: _cell_text(value) for header, value in zip(headers, record) if header}
        if any(row.values()):
            parsed.append((line_no, row))
    return parsed


def _xlsx_rows(file):
    sheet = load_workbook(file.stream, data_only=True).active
    rows = sheet.iter_rows(values_only=True)
    headers = [_cell_text(cell).lower() for cell in next(rows, ())]
    return _numbered(headers, rows)


def _csv_rows(file):
    reader = csv.reader(TextIOWrapper(file.stream, encoding='utf-8-sig', newline=''))
    headers = [cell.strip().lower() for cell in next(reader, [])]
    return _numbered(headers, reader)


def read_upload_rows(file):
    filename = (file.filename or '').lower()
    try:
        if filename.endswith('.xlsx'):
            return _xlsx_rows(file)
        return _csv_rows(file)
    except UNREADABLE_ERRORS as exc:
        current_app.logger.info("Rejected unreadable upload %r: %s", file.filename, exc)
        raise ValidationError(
            'File tidak dapat dibaca',
            errors={'file': 'Gunakan CSV berformat UTF-8 atau file XLSX yang valid'},
        ) from exc
