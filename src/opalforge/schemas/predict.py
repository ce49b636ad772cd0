from pydantic import BaseModel, HttpUrl


class PredictionRequest(BaseModel):
    """Body schema for POST /predict/url."""
    image_url: HttpUrl


class PredictionResponse(BaseModel):
    """Response schema for POST /predict and POST /predict/url."""
    prediction_id: str
    confidence: float
    authentic_probability: float
    replica_probability: float
    band: str
    mint_enabled: bool
    message: str
    softmax_applied: bool
    raw_output: list[float]
