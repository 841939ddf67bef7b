import ipaddress

IP_HEADERS = ('X-Forwarded-For', 'X-Real-IP', 'Client-IP')


def _is_public_ip(value: str) -> bool:
    try:
        ip = ipaddress.ip_address(value)
    except ValueError:
        return False
    return not (ip.is_private or ip.is_reserved or ip.is_loopback or ip.is_link_local)


def get_client_ip(req) -> str:
    """Ambil IP klien, utamakan header proxy yang berisi IP publik."""
    for header in IP_HEADERS:
        raw = req.headers.get(header)
        if not raw:
            continue
        candidate = raw.split(',')[0].strip()
        if _is_public_ip(candidate):
            return candidate

    return req.remote_addr or '127.0.0.1'
