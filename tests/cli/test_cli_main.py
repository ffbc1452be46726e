from unittest.mock import patch


def test_cli_main_invokes_uvicorn_run(monkeypatch):
    monkeypatch.setenv("PORT", "8081")
    with patch("uvicorn.run") as mock_run:
        # import inside test to ensure patch target is available
        from qrcoded.cli import main as cli_main

        cli_main.main()

    mock_run.assert_called_once()
    args, kwargs = mock_run.call_args
    assert args[0] == "qrcoded.main:app"
    assert kwargs["port"] == 8081
