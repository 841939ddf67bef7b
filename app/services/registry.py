from collections import namedtuple

from flask import current_app

from app.services.activity_logger import ActivityLogger
from app.services.agenda_service import AgendaService
from app.services.auth_service import AuthService
from app.services.user_service import UserService

EXTENSION_KEY = 'agenda_services'

Services = namedtuple('Services', ['settings', 'activity_logger', 'agendas', 'users', 'auth'])


def build_services(settings):
    activity_logger = ActivityLogger(settings)
    users = UserService(settings, activity_logger)
    return Services(
        settings=settings,
        activity_logger=activity_logger,
        agendas=AgendaService(settings, activity_logger),
        users=users,
        auth=AuthService(settings, users, activity_logger),
    )


def get_services() -> Services:
    return current_app.extensions[EXTENSION_KEY]
