"""
Fixtures that serve the fake service stack over real HTTP.
"""

import threading

import pytest
from locust.clients import HttpSession
from locust.env import Environment
from werkzeug.serving import make_server

from tests.fake_stack import REALM_PATH, TSA_PATH, create_fake_stack


@pytest.fixture
def stack_app():
    return create_fake_stack(seed=1234)


@pytest.fixture
def stack_state(stack_app):
    return stack_app.extensions["fake_stack"]


@pytest.fixture
def live_stack(stack_app):
    """
    Serve the fake stack on an ephemeral port.

    Yields:
        str: Base URL of the running server.
    """
    server = make_server("127.0.0.1", 0, stack_app, threaded=True)
    server_thread = threading.Thread(target=server.serve_forever, daemon=True)
    server_thread.start()

    yield f"http://127.0.0.1:{server.server_port}"

    server.shutdown()
    server_thread.join(timeout=5)


@pytest.fixture
def stack_config(make_config, live_stack):
    """Configuration pointing every service at the live fake stack."""
    return make_config(
        OIDC_ISSUER_URL=f"{live_stack}{REALM_PATH}",
        FULCIO_URL=live_stack,
        REKOR_URL=live_stack,
        HELPER_URL=live_stack,
        TSA_URL=f"{live_stack}{TSA_PATH}",
        REQUEST_TIMEOUT=5.0,
        TOKEN_WAIT_TIMEOUT=5.0,
    )


@pytest.fixture
def locust_environment():
    return Environment()


@pytest.fixture
def request_log(locust_environment):
    """Every request event fired by ``http_session``, in order."""
    fired = []
    locust_environment.events.request.add_listener(lambda **kwargs: fired.append(kwargs))
    return fired


@pytest.fixture
def http_session(live_stack, locust_environment, request_log):
    """A Locust ``HttpSession`` reporting to ``request_log``."""
    session = HttpSession(
        base_url=live_stack,
        request_event=locust_environment.events.request,
        user=None,
    )
    yield session
    session.close()
