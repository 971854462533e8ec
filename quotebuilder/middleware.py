"""Middleware for organization context."""
from functools import wraps
from flask import session, g, current_app
from quotebuilder.database import get_session
from quotebuilder.exceptions import UnauthorizedError
from quotebuilder.models import Organization


def load_organization():
    """
    Load the current organization into g (Flask's per-request global).

    Called before each request. Sets g.organization_id only when the
    organization stored in the session exists and is active.
    """
    g.organization_id = None

    organization_id = session.get('organization_id')
    if not organization_id:
        return

    try:
        db_session = get_session()
        organization = db_session.query(Organization).filter_by(
            id=organization_id,
            active=True
        ).first()
    except Exception as e:
        current_app.logger.error(f"Error in load_organization: {e}")
        return

    if organization:
        g.organization_id = organization.id
    else:
        # Organization removed or deactivated, drop it from the session
        session.pop('organization_id', None)


def current_organization_id() -> int:
    """Organization of the current request; raises when none is selected."""
    organization_id = g.get('organization_id')
    if organization_id is None:
        raise UnauthorizedError('No organization selected.')
    return organization_id


def require_organization(f):
    """
    Decorator: Require an organization in context.

    The UnauthorizedError propagates to the application error handler.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        current_organization_id()
        return f(*args, **kwargs)
    return decorated_function
