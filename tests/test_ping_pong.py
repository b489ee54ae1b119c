import logging
from datetime import datetime

from sparallel.rpc.ping_pong import PingPongApi


def test_ping_returns_same_message():
    message = str(datetime.now())
    assert PingPongApi().ping(message) == {"Message": message}


def test_ping_logs_message_length(caplog):
    with caplog.at_level(logging.INFO, logger="sparallel.rpc.ping_pong"):
        PingPongApi().ping("hello")
    assert "Ping: 5" in caplog.messages


def test_close_logs_warning(caplog):
    with caplog.at_level(logging.WARNING, logger="sparallel.rpc.ping_pong"):
        PingPongApi().close()
    assert "Closing ping-pong server" in caplog.messages