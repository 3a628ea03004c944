"""
Prompts for the task-decomposition model.
"""

SYSTEM_PROMPT = """You are an AI Task Analyst that outputs STRICT JSON only.
Follow the schema:
{
  "title": string,
  "assumptions": string[],
  "steps": [
    { "title": string, "why": string, "how": string, "filesToTouch": string[] }
  ],
  "risks": string[],
  "testPlan": string[]
}

Rules:
- Do not include code execution, shell commands, or secrets.
- No fake/mock data for dev or prod.
- Prefer simple solutions and avoid duplication.
- Consider environments: dev, test, prod.
- Keep steps clear and actionable.
- Output JSON only, no backticks, no markdown."""


class PromptBuilder:
    """Builds the chat messages for one analysis request"""

    def get_system_prompt(self) -> str:
        return SYSTEM_PROMPT

    def get_user_prompt(self, task_text: str, regenerate: bool = False) -> str:
        if regenerate:
            return f"Better version: {task_text}"
        return f"Task: {task_text}"

    def build_messages(self, task_text: str, regenerate: bool = False) -> list[dict]:
        return [
            {"role": "system", "content": self.get_system_prompt()},
            {"role": "user", "content": self.get_user_prompt(task_text, regenerate)},
        ]
