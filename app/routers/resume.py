from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from app.schemas.resume import ParseMessageRequest, ParseResumeRequest, ResumeResponse
from app.services.resume_parser import parse_resume

router = APIRouter()

ERR_MESSAGE_REQUIRED = "Message is required"
ERR_CHAT_HISTORY_REQUIRED = "Chat history is required"


@router.post("/parse-message", response_model=ResumeResponse)
def parse_message(request: ParseMessageRequest):
    """Parse a single chat message into a resume record."""
    if not request.message or not request.message.strip():
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": ERR_MESSAGE_REQUIRED})
    return ResumeResponse(resume=parse_resume(request.message))


@router.post("/parse-resume", response_model=ResumeResponse)
def parse_chat_history(request: ParseResumeRequest):
    """Parse a whole chat transcript into a resume record."""
    if not request.chatHistory or not request.chatHistory.strip():
        return JSONResponse(status_code=status.HTTP_400_BAD_REQUEST, content={"error": ERR_CHAT_HISTORY_REQUIRED})
    return ResumeResponse(resume=parse_resume(request.chatHistory))
