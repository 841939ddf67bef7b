from app.models import UserRole


ROLE_PERMISSIONS = {
    UserRole.ADMIN: frozenset({
        'create_agenda',
        'edit_agenda',
        'delete_agenda',
        'approve_agenda',
        'reject_agenda',
        'view_pending',
        'view_all_agendas',
        'create_user',
        'edit_user',
        'delete_user',
        'view_stats',
        'view_activities',
    }),
    UserRole.GURU: frozenset({
        'create_agenda',
        'edit_own_agenda',
        'view_own_agendas',
    }),
    UserRole.SISWA: frozenset({
        'view_approved_agendas',
    }),
}

ROLE_LABELS = {
    UserRole.ADMIN: 'Admin',
    UserRole.GURU: 'Guru',
    UserRole.SISWA: 'Siswa',
}


def parse_role(raw):
    if not raw:
        return None

    if isinstance(raw, UserRole):
        return raw

    if isinstance(raw, str):
        normalized = raw.strip()
        if not normalized:
            return None

        try:
            return UserRole[normalized.upper()]
        except KeyError:
            pass

        for role in UserRole:
            if normalized.lower() == role.value:
                return role

    return None


def has_permission(role, action):
    """Role tidak dikenal atau action tidak dikenal selalu ditolak."""
    parsed = parse_role(role)
    if parsed is None or not action:
        return False
    return action in ROLE_PERMISSIONS.get(parsed, frozenset())


def permissions_for(role):
    parsed = parse_role(role)
    return sorted(ROLE_PERMISSIONS.get(parsed, frozenset())) if parsed else []


def role_label(role):
    parsed = parse_role(role)
    if not parsed:
        return '-'
    return ROLE_LABELS.get(parsed, parsed.value.title())


def role_for_email(email, email_domains):
    """
    Tentukan role dari suffix domain email sekolah.
    Suffix terpanjang dicek lebih dulu.
    """
    address = (email or '').strip().lower()
    if '@' not in address:
        return None

    ordered = sorted(email_domains.items(), key=lambda item: len(item[1]), reverse=True)
    for role_name, suffix in ordered:
        if suffix and address.endswith(suffix.lower()):
            return parse_role(role_name)
    return None
