from __future__ import annotations

from dataclasses import dataclass
import json
from typing import Any, Sequence


DEFAULT_TARGET_AUDIENCE = "RPAS operators"
DEFAULT_LESSON_CATEGORY = "General Training"
DEFAULT_QUESTION_COUNT = 5
DEFAULT_DIFFICULTY = "intermediate"
DEFAULT_QUESTION_TYPES = ("multiple_choice", "true_false")
DEFAULT_SCENARIO_TYPE = "decision_tree"
DEFAULT_CARD_COUNT = 10
DEFAULT_FLASHCARD_CATEGORY = "general"


@dataclass(frozen=True)
class TrainingPrompt:
    system: str
    user: str

    def turns(self) -> list[dict[str, str]]:
        return [{"role": "user", "content": self.user}]


def enhance_lesson_prompt(
    *,
    raw_content: str,
    lesson_title: str,
    category: str | None,
    target_audience: str,
) -> TrainingPrompt:
    system = f"""You are an expert instructional designer specializing in aviation and RPAS (drone) training.
Your task is to enhance raw training content to make it more engaging and effective for adult learners.

Guidelines:
- Maintain technical accuracy - this is safety-critical aviation training
- Add real-world examples and analogies where appropriate
- Break complex concepts into digestible chunks
- Include practical application scenarios
- Add memory hooks and mnemonics where helpful
- Reference relevant regulations (CARs, SORA) when appropriate
- Keep the professional tone but make it conversational
- Include "Key Takeaway" boxes for critical points
- Add "Think About It" prompts for reflection

Target audience: {target_audience}
Category: {category or DEFAULT_LESSON_CATEGORY}

Return the enhanced content in clean HTML format suitable for a learning management system."""
    user = f'Please enhance this lesson content for "{lesson_title}":\n\n{raw_content}'
    return TrainingPrompt(system=system, user=user)


def quiz_prompt(
    *,
    lesson_content: str,
    lesson_title: str,
    question_count: int,
    difficulty: str,
    question_types: Sequence[str],
) -> TrainingPrompt:
    system = f"""You are an expert assessment designer for aviation and RPAS training.
Generate quiz questions that test understanding, not just memorization.

Guidelines:
- Create questions at {difficulty} difficulty level
- Include {question_count} questions
- Question types allowed: {', '.join(question_types)}
- Each question should test a key learning objective
- Multiple choice: 4 options, one correct, three plausible distractors
- Include brief explanations for correct answers
- Reference specific regulations or standards where relevant
- Avoid trivial or overly obvious questions

Return as JSON with this structure:
{{
  "questions": [
    {{
      "id": "q1",
      "type": "multiple_choice",
      "question": "Question text",
      "options": ["A", "B", "C", "D"],
      "correctAnswer": 0,
      "explanation": "Why this is correct",
      "regulatoryRef": "CAR 901.xx",
      "difficulty": "{difficulty}",
      "points": 10
    }}
  ]
}}"""
    user = f'Generate {question_count} quiz questions for this lesson "{lesson_title}":\n\n{lesson_content}'
    return TrainingPrompt(system=system, user=user)


def scenario_prompt(
    *,
    procedure_content: str,
    procedure_title: str,
    scenario_type: str,
    difficulty: str,
    context: dict[str, Any],
) -> TrainingPrompt:
    # sort_keys keeps the rendered context stable for identical inputs.
    context_json = json.dumps(context, sort_keys=True)
    system = f"""You are an expert scenario designer for aviation and RPAS operations training.
Create realistic, immersive scenarios that test procedural knowledge and decision-making.

Guidelines:
- Create a {scenario_type} scenario at {difficulty} difficulty
- Make it realistic and relevant to Canadian RPAS operations
- Include environmental factors, time pressure, and real-world complications
- Each decision point should have 2-4 options with different outcomes
- Include at least one "trap" choice that seems reasonable but is wrong
- Provide detailed feedback for each path
- Reference relevant procedures and regulations
- The scenario should take 5-10 minutes to complete

Context provided: {context_json}

Return as JSON with this structure:
{{
  "scenario": {{
    "id": "scenario_xxx",
    "title": "Scenario Title",
    "description": "Setup and context",
    "type": "{scenario_type}",
    "difficulty": "{difficulty}",
    "estimatedTime": 10,
    "startNodeId": "node_1",
    "nodes": [
      {{
        "id": "node_1",
        "type": "situation",
        "content": "Situation description with rich detail",
        "image": null,
        "choices": [
          {{
            "id": "choice_1a",
            "text": "Choice text",
            "nextNodeId": "node_2",
            "isOptimal": true,
            "feedback": "Why this choice matters"
          }}
        ]
      }},
      {{
        "id": "node_end_success",
        "type": "outcome",
        "content": "Success outcome description",
        "isSuccess": true,
        "xpReward": 50,
        "lessonLearned": "Key takeaway"
      }}
    ],
    "learningObjectives": ["Objective 1", "Objective 2"],
    "regulatoryRefs": ["CAR xxx", "Standard xxx"]
  }}
}}"""
    user = f'Create an interactive scenario based on this procedure "{procedure_title}":\n\n{procedure_content}'
    return TrainingPrompt(system=system, user=user)


def flashcards_prompt(
    *,
    content: str,
    content_title: str,
    card_count: int,
    category: str,
    focus_areas: Sequence[str],
) -> TrainingPrompt:
    focus_note = (
        f"Focus on these areas: {', '.join(focus_areas)}" if focus_areas else "Cover all key concepts"
    )
    system = f"""You are an expert in creating effective flashcards for aviation and RPAS training.
Create flashcards that aid memorization and understanding.

Guidelines:
- Create {card_count} flashcards from the content
- Each card should focus on ONE key concept
- Use clear, concise questions
- Provide complete but focused answers
- Include mnemonics or memory aids where helpful
- Reference regulations when relevant
- {focus_note}

Return as JSON with this structure:
{{
  "flashcards": [
    {{
      "id": "card_1",
      "category": "{category}",
      "question": "Clear question",
      "answer": "Complete answer",
      "mnemonic": "Memory aid if applicable",
      "regulatoryRef": "Reference if applicable",
      "difficulty": "beginner|intermediate|advanced",
      "tags": ["tag1", "tag2"]
    }}
  ]
}}"""
    user = f'Generate {card_count} flashcards from this content "{content_title}":\n\n{content}'
    return TrainingPrompt(system=system, user=user)


WRONG_ANSWER_SYSTEM = """You are a supportive RPAS instructor helping a student understand why their answer was incorrect.

Guidelines:
- Be encouraging and supportive - never condescending
- Explain WHY the correct answer is right
- Explain WHY the chosen answer is incorrect
- Provide a memorable way to remember the concept
- Keep response concise (3-4 sentences)
- Reference regulations if relevant

Format your response with:
1. Brief acknowledgment
2. Why the correct answer is right
3. Common misconception addressed
4. Memory tip"""


def wrong_answer_prompt(
    *,
    question: str,
    user_answer: str,
    correct_answer: str,
    explanation: str | None,
    category: str | None,
) -> TrainingPrompt:
    lines = [
        f"Question: {question}",
        f"User's Answer: {user_answer}",
        f"Correct Answer: {correct_answer}",
    ]
    if explanation:
        lines.append(f"Explanation: {explanation}")
    lines.append(f"Category: {category or 'General'}")
    return TrainingPrompt(system=WRONG_ANSWER_SYSTEM, user="\n".join(lines))


def wrong_answer_fallback(correct_answer: str, explanation: str | None) -> str:
    return f"The correct answer is: {correct_answer}. {explanation or 'Please review the lesson for more details.'}"


DEBRIEF_SYSTEM = """You are an experienced RPAS operations instructor conducting a debrief after a training scenario.

Guidelines:
- Start with what went well
- Analyze each decision point
- Connect decisions to real-world consequences
- Reference relevant regulations and procedures
- Provide specific improvement recommendations
- Include a "What would a seasoned pilot do?" perspective
- End with encouragement and next steps

Structure your debrief:
1. **Overall Assessment** (1-2 sentences)
2. **What You Did Well** (2-3 bullet points)
3. **Decision Analysis** (analyze key decision points)
4. **Regulatory Connections** (relevant CARs, procedures)
5. **Real-World Application** (how this applies to actual operations)
6. **Recommendations** (specific actions to improve)
7. **Next Steps** (what to study or practice next)"""


def decision_summary(decisions: Sequence[dict[str, Any]]) -> str:
    return "\n".join(
        f"Decision {index}: {decision.get('choice', '')} "
        f"({'Optimal' if decision.get('was_optimal') else 'Suboptimal'})"
        for index, decision in enumerate(decisions, start=1)
    )


def debrief_prompt(
    *,
    scenario_title: str,
    decisions: Sequence[dict[str, Any]],
    outcome: dict[str, Any],
    time_spent: float | int | None,
    optimal_path: str | None,
) -> TrainingPrompt:
    result = "Successful" if outcome.get("is_success") else "Unsuccessful"
    sections = [
        "Please provide a debrief for this scenario:",
        "\n".join(
            [
                f"Scenario: {scenario_title}",
                f"Outcome: {result} - {outcome.get('description', '')}",
                f"Time Spent: {time_spent} minutes",
            ]
        ),
        f"Decisions Made:\n{decision_summary(decisions)}",
    ]
    if optimal_path:
        sections.append(f"Optimal Path: {optimal_path}")
    return TrainingPrompt(system=DEBRIEF_SYSTEM, user="\n\n".join(sections))
