"""Quiz catalog and section scoring for graders.

The catalog is a JSON list of sections, each shaped like::

	{"kind": "mc", "title": "...", "length": 10,
	 "choices": [["cat", "dog"], ...], "correctAnswers": ["dog", ...]}

MC answers are stored as option indices; a response is correct when the
option's text equals the section's correct answer for that question.
"""

from __future__ import annotations
import json
import logging
from functools import lru_cache
from pathlib import Path
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from .models import StudentResponse
from .settings import settings
from .store import AUDIO, MC

logger = logging.getLogger(__name__)


class QuizSection(BaseModel):
	model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

	kind: str = Field(pattern="^(mc|audio)$")
	title: Optional[str] = None
	length: Optional[int] = Field(default=None, ge=0)
	choices: Optional[List[List[str]]] = None
	correct_answers: Optional[List[Optional[str]]] = None

	@property
	def total(self) -> int:
		if self.length is not None:
			return self.length
		return len(self.choices or [])


@lru_cache(maxsize=4)
def _load(path: str) -> List[QuizSection]:
	raw = json.loads(Path(path).read_text(encoding="utf-8"))
	sections = [QuizSection.model_validate(item) for item in raw]
	logger.info("Loaded quiz catalog %s (%d sections)", path, len(sections))
	return sections


def load_catalog(path: Optional[str] = None) -> Optional[List[QuizSection]]:
	path = path or settings.quiz_catalog_path
	if not path:
		return None
	try:
		return _load(path)
	except (OSError, TypeError, ValueError) as e:
		# Scores are optional; responses are still served without them
		logger.warning("Quiz catalog %s unusable: %s", path, e)
		return None


def score_mc(section: QuizSection, row: StudentResponse) -> Dict[str, int]:
	correct = 0
	choices = section.choices or []
	answers = section.correct_answers or []
	for key, answer_index in (row.student_responses or {}).items():
		q = int(key)
		if answer_index is None or q >= len(choices) or q >= len(answers):
			continue
		options = choices[q]
		if 0 <= answer_index < len(options) and answers[q] and options[answer_index] == answers[q]:
			correct += 1
	return {"correct": correct, "total": section.total}


def score_audio(section: QuizSection, row: StudentResponse) -> Dict[str, int]:
	grades = [g for g in (row.grades or {}).values() if g is not None]
	return {"numGraded": len(grades), "total": section.total, "totalScore": sum(grades)}


def score_sections(catalog: List[QuizSection], rows: List[StudentResponse]) -> Dict[str, Dict[str, Any]]:
	scores: Dict[str, Dict[str, Any]] = {}
	for row in rows:
		if row.section >= len(catalog) or str(row.section) in scores:
			continue
		section = catalog[row.section]
		if section.kind != row.type:
			logger.warning("Section %s kind mismatch: catalog=%s stored=%s", row.section, section.kind, row.type)
			continue
		if row.type == MC:
			scores[str(row.section)] = score_mc(section, row)
		elif row.type == AUDIO:
			scores[str(row.section)] = score_audio(section, row)
	return scores
