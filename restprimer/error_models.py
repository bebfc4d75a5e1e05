"""
Error response models for the REST framework.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


class ErrorResponse(BaseModel):
    """Structured error body sent to clients.

    Every error that leaves the framework, whether raised by validation, by a
    handler or normalized by the terminal error stage, is serialized with this
    model.
    """

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "code": 400,
                "message": "This request is not valid.",
                "details": [
                    {
                        "path": "/query/page",
                        "keyword": "minimum",
                        "message": "0 is less than the minimum of 1",
                        "params": {"minimum": 1},
                        "schemaPath": "#/properties/query/properties/page/minimum",
                    }
                ],
            }
        }
    )

    code: int = Field(..., description="HTTP status code of the error")

    message: str = Field(..., description="Human-readable error message describing what went wrong")

    details: Any = Field(
        None,
        description="Additional detail; for validation errors, the list of validator errors"
    )
