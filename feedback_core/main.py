import uvicorn

from feedback_core.core.app_factory import create_app

app = create_app()


def run() -> None:
    """Serve the app with uvicorn (``feedback-core`` console script)."""
    uvicorn.run("feedback_core.main:app", host="0.0.0.0", port=8000)
