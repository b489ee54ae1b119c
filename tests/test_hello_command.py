from sparallel.app import App, AppConfig
from sparallel.hello_command import HelloCommand


def test_handle_prints_hello(capsys):
    HelloCommand().handle(["ignored"])
    assert capsys.readouterr().out == "hello\n"


def test_title_and_parameters():
    command = HelloCommand()
    assert command.title() == "Just print Hello"
    assert command.parameters() == ""


def test_listed_by_app(capsys):
    App(AppConfig(), {"hello": HelloCommand()}, []).start("", [])
    lines = capsys.readouterr().out.splitlines()
    assert lines[0] == "Commands:"
    assert lines[1] == " hello  - Just print Hello"