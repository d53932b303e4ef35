from pydantic import BaseModel


class MessageResponse(BaseModel):
    message: str


ACCEPTED = MessageResponse(message="OK")
