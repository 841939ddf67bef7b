"""
Error domain agenda. Setiap error membawa status HTTP sehingga route cukup
meneruskan ke error handler tanpa menebak kode.
"""


class AgendaError(Exception):
    status_code = 500
    message = 'Terjadi kesalahan sistem'

    def __init__(self, message=None, errors=None):
        super().__init__(message or self.message)
        self.message = message or self.message
        self.errors = errors


class ValidationError(AgendaError):
    status_code = 422
    message = 'Validasi gagal'


class AuthenticationError(AgendaError):
    status_code = 401
    message = 'Autentikasi gagal'


class PermissionDenied(AgendaError):
    status_code = 403
    message = 'Akses ditolak'


class NotFound(AgendaError):
    status_code = 404
    message = 'Data tidak ditemukan'


class Conflict(AgendaError):
    status_code = 409
    message = 'Data sudah diproses sebelumnya'


class LastAdminError(Conflict):
    message = 'Tidak dapat menghapus admin terakhir'


class PersistenceError(AgendaError):
    status_code = 500
    message = 'Gagal menyimpan ke database'
