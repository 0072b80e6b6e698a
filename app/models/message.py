from sqlalchemy import JSON, Column, DateTime, Integer, Text

from app.database import Base


class Message(Base):
    __tablename__ = "messages"

    id = Column(Integer, primary_key=True, autoincrement=True)
    role = Column(Text, nullable=False)  # user, system
    content = Column(Text, nullable=False)
    sender = Column(Text)
    message_metadata = Column("metadata", JSON, nullable=False, default=dict)
    created_at = Column(DateTime(timezone=True), nullable=False)
