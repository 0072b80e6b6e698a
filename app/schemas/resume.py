from typing import Optional

from pydantic import BaseModel, Field


class JobExperience(BaseModel):
    companyName: str = ""
    role: str = ""
    startDate: str = ""
    endDate: str = ""
    employmentType: str = "FULL_TIME"
    description: str = ""


class Location(BaseModel):
    city: str = ""
    country: str = ""


class ResumeRecord(BaseModel):
    id: int
    email: str = ""
    firstName: str = ""
    lastName: str = ""
    phoneNumber: str = ""
    hardSkills: str = ""
    softSkills: str = ""
    shortCVSummary: str = ""
    currentOccupation: str = ""
    currentMonthlySalary: int = 0
    expectedMonthlySalary: int = 0
    totalYearsOfExperience: int = 0
    lastJobsExperience: list[JobExperience] = Field(default_factory=list)
    location: Location = Field(default_factory=Location)
    status: str = "ACTIVE"
    type: str = "CHAT_BOT"
    source: str = "BINARY"


class ParseMessageRequest(BaseModel):
    message: Optional[str] = None


class ParseResumeRequest(BaseModel):
    chatHistory: Optional[str] = None


class ResumeResponse(BaseModel):
    resume: ResumeRecord
