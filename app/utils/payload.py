from flask import request
from werkzeug.datastructures import ImmutableMultiDict


def json_payload():
    """Body JSON sebagai dict. Body kosong, rusak, atau bukan objek -> {}."""
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _as_text(value):
    if isinstance(value, bool):
        # BooleanField hanya mengenal 'false' sebagai nilai salah
        return 'true' if value else 'false'
    return str(value)


def json_formdata():
    """
    Body JSON dalam bentuk MultiDict untuk WTForms. Angka/boolean dijadikan
    teks; nilai null, list, dan objek dibuang sehingga dianggap tidak diisi.
    """
    return ImmutableMultiDict({
        key: _as_text(value)
        for key, value in json_payload().items()
        if isinstance(value, (str, int, float, bool))
    })
