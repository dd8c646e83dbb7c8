"""
Wire models for the external question generator
"""
from pydantic import BaseModel, Field, ConfigDict


class GenerationRequest(BaseModel):
    """Request body sent to the generator"""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "s3_url": "https://bucket.s3.amazonaws.com/uploads/lecture-notes.pdf"
            }
        }
    )

    document_storage_url: str = Field(..., min_length=1, alias="s3_url", description="Storage URL of the uploaded document")

    def to_payload(self) -> dict:
        """JSON body as the generator expects it"""
        return self.model_dump(by_alias=True)


class GenerationResponse(BaseModel):
    """Generator reply pointing at the CSV of generated questions"""
    model_config = ConfigDict(
        populate_by_name=True,
        json_schema_extra={
            "example": {
                "csv_url": "https://bucket.s3.amazonaws.com/results/lecture-notes.csv"
            }
        }
    )

    result_url: str = Field(..., min_length=1, alias="csv_url", description="Location of the generated question/answer CSV")
