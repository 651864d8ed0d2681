"""
Quiz feature: generation and grading prompts.
"""

from typing import Sequence

from pdftutor.features.knowledge.schemas import Chunk, RetrievedChunk

# Broad query used to pull representative chunks when generating a quiz.
QUIZ_CONTEXT_QUERY = "key concepts laws principles formulas equations definitions examples problems solutions"

QUIZ_FALLBACK_QUERIES = (
    "text content information data",
    "chapter section paragraph",
    "content material information",
)

QUIZ_SYSTEM_PROMPT = """You are an expert tutor creating educational quizzes. Generate questions based ONLY on the provided document content. Each question must be directly answerable from the given context.

Requirements:
- MCQ: 4 options, only one correct
- SAQ: 2-3 sentence answers expected
- LAQ: 5-10 sentence answers expected
- Include page citations for each question
- Extract topic from question content
- Provide clear explanations
- Ensure questions test understanding, not memorization

Return JSON format:
{
  "questions": [
    {
      "type": "mcq|saq|laq",
      "question": "string",
      "options": ["string"] (only for MCQ),
      "correctAnswer": "string",
      "explanation": "string",
      "page": number,
      "lineStart": number (optional),
      "lineEnd": number (optional),
      "topic": "string"
    }
  ]
}"""

QUIZ_USER_TEMPLATE = """Generate a quiz with:
- {mcq} MCQ questions
- {saq} SAQ questions
- {laq} LAQ questions
- Difficulty: {difficulty}

Document Content:
{context}

Focus on the key concepts, laws, and principles from the content."""

SAQ_EVALUATION_PROMPT = """Evaluate this short answer question:

Question: {question}
Correct Answer: {correct_answer}
Student Answer: {user_answer}

Rate the student's answer on a scale of 0-1 where:
- 1.0 = Perfect answer, covers all key points
- 0.8-0.9 = Good answer, minor details missing
- 0.6-0.7 = Partially correct, some key points covered
- 0.4-0.5 = Some understanding, major gaps
- 0.0-0.3 = Incorrect or very incomplete

Consider:
- Key concepts mentioned
- Accuracy of information
- Completeness of answer
- Clarity of expression

Return JSON: {{"score": number, "feedback": "string"}}"""

LAQ_EVALUATION_PROMPT = """Evaluate this long answer question using a detailed rubric:

Question: {question}
Model Answer: {correct_answer}
Student Answer: {user_answer}

Rubric (40/40/20):
- Content (40%): Accuracy, depth, key concepts covered
- Clarity (40%): Organization, explanation quality, logical flow
- Completeness (20%): Addresses all parts of question

Rate each dimension 0-1, then calculate weighted average.

Return JSON: {{
  "contentScore": number,
  "clarityScore": number,
  "completenessScore": number,
  "overallScore": number,
  "feedback": "Detailed feedback string"
}}"""


def format_quiz_context(chunks: Sequence[Chunk | RetrievedChunk]) -> str:
    """``[Chunk i | Page P, Lines a-b]`` header followed by the chunk text."""
    blocks = []
    for i, chunk in enumerate(chunks, start=1):
        header = f"[Chunk {i} | Page {chunk.page}"
        if chunk.line_start:
            header += f", Lines {chunk.line_start}-{chunk.line_end or chunk.line_start}"
        blocks.append(f"{header}]\n{chunk.text}")
    return "\n\n".join(blocks)
