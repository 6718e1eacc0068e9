"""
Phrase model: one (word, code) entry of the published dictionary.
"""
from dataclasses import dataclass
from sqlalchemy import Column, Integer, String, Text, DateTime, ForeignKey, UniqueConstraint, Enum as SQLEnum
from sqlalchemy.sql import func
from sqlalchemy.orm import relationship
import enum

from keytao.core.db import Base


class PhraseType(str, enum.Enum):
    """Dictionary section a phrase belongs to"""
    SINGLE = "Single"
    PHRASE = "Phrase"
    SUPPLEMENT = "Supplement"
    SYMBOL = "Symbol"
    LINK = "Link"
    CSS = "CSS"
    CSS_SINGLE = "CSSSingle"
    ENGLISH = "English"


class PhraseStatus(str, enum.Enum):
    DRAFT = "Draft"
    FINISH = "Finish"
    REJECT = "Reject"


@dataclass(frozen=True)
class PhraseTypeConfig:
    label: str
    default_weight: int
    rime_file_name: str


PHRASE_TYPE_CONFIGS: dict[PhraseType, PhraseTypeConfig] = {
    PhraseType.SINGLE: PhraseTypeConfig("单字", 10, "single"),
    PhraseType.PHRASE: PhraseTypeConfig("词组", 100, "phrase"),
    PhraseType.SUPPLEMENT: PhraseTypeConfig("补充", 100, "supplement"),
    PhraseType.SYMBOL: PhraseTypeConfig("符号", 10, "symbol"),
    PhraseType.LINK: PhraseTypeConfig("链接", 10000, "link"),
    PhraseType.CSS: PhraseTypeConfig("声笔笔", 100, "css"),
    PhraseType.CSS_SINGLE: PhraseTypeConfig("声笔笔单字", 10, "css-single"),
    PhraseType.ENGLISH: PhraseTypeConfig("英文", 100, "english"),
}

FALLBACK_WEIGHT = 100


def default_weight(phrase_type) -> int:
    """Base weight for a type; unknown or missing types get the fallback."""
    try:
        return PHRASE_TYPE_CONFIGS[PhraseType(phrase_type)].default_weight
    except ValueError:
        return FALLBACK_WEIGHT


def rime_file_name(phrase_type) -> str:
    return PHRASE_TYPE_CONFIGS[PhraseType(phrase_type)].rime_file_name


class Phrase(Base):
    __tablename__ = "phrases"
    __table_args__ = (
        UniqueConstraint("word", "code", name="uq_phrases_word_code"),
    )

    id = Column(Integer, primary_key=True, index=True)
    word = Column(String(255), nullable=False, index=True)
    code = Column(String(16), nullable=False, index=True)
    type = Column(SQLEnum(PhraseType), default=PhraseType.PHRASE, nullable=False, index=True)
    status = Column(SQLEnum(PhraseStatus), default=PhraseStatus.FINISH, nullable=False)
    weight = Column(Integer, default=0, nullable=False)
    remark = Column(Text, nullable=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    user = relationship("User", back_populates="phrases")

    def __repr__(self) -> str:  # pragma: no cover
        return f"<Phrase id={self.id} word={self.word} code={self.code}>"
