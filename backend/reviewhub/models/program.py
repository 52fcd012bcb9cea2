"""Profiles, programs and applications.

These tables belong to the surrounding platform (identity and program
registry). The review engine only reads them.
"""
from datetime import datetime
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, JSON
from sqlalchemy.orm import relationship

from ..database import Base


class Profile(Base):
    """Platform user with a set of role names."""

    __tablename__ = "profiles"

    id = Column(Integer, primary_key=True, index=True)
    full_name = Column(String(200), nullable=True)
    email = Column(String(255), nullable=False, unique=True, index=True)

    # e.g. ["reviewer"], ["organizer", "super_admin"]
    roles = Column(JSON, nullable=False, default=list)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    expertise = relationship("ReviewerExpertise", back_populates="reviewer", cascade="all, delete-orphan")

    def has_role(self, role: str) -> bool:
        return role in (self.roles or [])

    def __repr__(self):
        return f"<Profile {self.id} {self.email}>"


class Program(Base):
    """Structured program (workshop, fellowship, ...) that accepts applications."""

    __tablename__ = "programs"

    id = Column(Integer, primary_key=True, index=True)
    title = Column(String(300), nullable=False)
    description = Column(Text, nullable=True)

    # Program owner
    created_by = Column(Integer, ForeignKey("profiles.id"), nullable=False, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    owner = relationship("Profile")
    applications = relationship("Application", back_populates="program")
    criteria = relationship("Criterion", back_populates="program", order_by="Criterion.sort_order")

    def __repr__(self):
        return f"<Program {self.id} - {self.title[:50]}>"


class Application(Base):
    """Application submitted to a program."""

    __tablename__ = "applications"

    id = Column(Integer, primary_key=True, index=True)
    program_id = Column(Integer, ForeignKey("programs.id"), nullable=False, index=True)
    applicant_id = Column(Integer, ForeignKey("profiles.id"), nullable=True, index=True)

    # Null while the application is still a draft
    submitted_at = Column(DateTime, nullable=True, index=True)

    created_at = Column(DateTime, default=datetime.utcnow, nullable=False)

    program = relationship("Program", back_populates="applications")
    applicant = relationship("Profile")

    @property
    def applicant_name(self) -> str:
        return (self.applicant.full_name or "") if self.applicant else ""

    def __repr__(self):
        return f"<Application {self.id} program={self.program_id}>"
