from dataclasses import dataclass, field
from typing import Dict


@dataclass(frozen=True)
class Settings:
    """Nilai konfigurasi yang dibutuhkan service, dibaca sekali saat startup."""

    email_domains: Dict[str, str] = field(default_factory=dict)
    password_min_length: int = 6
    password_max_length: int = 50
    stale_pending_days: int = 30
    log_retention_days: int = 365
    suspicious_window_days: int = 7
    suspicious_failed_logins: int = 10
    suspicious_total_events: int = 100
    default_page_size: int = 10
    max_page_size: int = 100
    default_rejection_reason: str = 'Ditolak oleh admin'
    stale_rejection_reason: str = 'Auto-rejected: Pending terlalu lama'

    @classmethod
    def from_mapping(cls, config):
        return cls(
            email_domains=dict(config.get('EMAIL_DOMAINS') or {}),
            password_min_length=config.get('PASSWORD_MIN_LENGTH', 6),
            password_max_length=config.get('PASSWORD_MAX_LENGTH', 50),
            stale_pending_days=config.get('STALE_PENDING_DAYS', 30),
            log_retention_days=config.get('LOG_RETENTION_DAYS', 365),
            suspicious_window_days=config.get('SUSPICIOUS_WINDOW_DAYS', 7),
            suspicious_failed_logins=config.get('SUSPICIOUS_FAILED_LOGINS', 10),
            suspicious_total_events=config.get('SUSPICIOUS_TOTAL_EVENTS', 100),
            default_page_size=config.get('DEFAULT_PAGE_SIZE', 10),
            max_page_size=config.get('MAX_PAGE_SIZE', 100),
        )

    def clamp_page_size(self, per_page):
        if not per_page or per_page < 1:
            return self.default_page_size
        return min(per_page, self.max_page_size)
