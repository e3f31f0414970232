from fastapi import Request

from datahub.services.engine import DataHub


def get_hub(request: Request) -> DataHub:
    """Return the DataHub created at application startup."""
    return request.app.state.hub
