"""
Prompt Management

Loads the analysis prompts with priority:
1. prompts.yml shipped with the package
2. Built-in fallback prompts

Supports template variable substitution.
"""

import yaml
import os
from typing import Dict, Any, Optional
import logging

logger = logging.getLogger(__name__)

PROMPT_TYPES = ("critique", "summarize")

# promptType -> chapter field that stores the finished analysis
ANALYSIS_RESULT_FIELDS = {
    "critique": "critique",
    "summarize": "summary",
}

class PromptManager:
    """Prompt manager backed by a YAML file"""

    def __init__(self, prompts_file_path: str = None):
        """Initialize prompt manager with path to prompts.yml"""
        if prompts_file_path is None:
            # Default to prompts.yml in the package directory
            package_dir = os.path.dirname(os.path.dirname(os.path.dirname(__file__)))
            prompts_file_path = os.path.join(package_dir, "prompts.yml")

        self.prompts_file_path = prompts_file_path
        self._prompts_cache: Optional[Dict[str, Any]] = None
        self._load_prompts()

    def _load_prompts(self):
        """Load prompts from YAML file"""
        try:
            with open(self.prompts_file_path, 'r', encoding='utf-8') as file:
                self._prompts_cache = yaml.safe_load(file) or {}
            logger.info(f"Loaded prompts from {self.prompts_file_path}")
        except FileNotFoundError:
            logger.error(f"Prompts file not found: {self.prompts_file_path}")
            self._prompts_cache = {}
        except yaml.YAMLError as e:
            logger.error(f"Error parsing prompts YAML: {e}")
            self._prompts_cache = {}

    def get_chapter_system_prompt(self, prompt_type: str) -> str:
        """System prompt for a chapter-level analysis ('critique' or 'summarize')"""
        if prompt_type not in PROMPT_TYPES:
            raise ValueError(f"Unknown prompt type: {prompt_type}")
        prompt_text = self._get_yaml_prompt(("chapter_analysis", prompt_type, "system"))
        return prompt_text or FALLBACK_PROMPTS["chapter_analysis"][prompt_type]

    def get_chapter_user_prompt(self, **template_vars) -> str:
        prompt_text = self._get_yaml_prompt(("chapter_analysis", "user")) or FALLBACK_PROMPTS["chapter_analysis"]["user"]
        return self._substitute_variables(prompt_text, **template_vars)

    def get_part_user_prompt(self, **template_vars) -> str:
        prompt_text = self._get_yaml_prompt(("part_analysis", "user")) or FALLBACK_PROMPTS["part_analysis"]["user"]
        return self._substitute_variables(prompt_text, **template_vars)

    def get_placeholder(self, name: str) -> str:
        """Text rendered in place of a missing optional segment"""
        placeholder = self._get_yaml_prompt(("settings", "placeholders", name))
        return placeholder or FALLBACK_PLACEHOLDERS.get(name, "")

    def _get_yaml_prompt(self, path: tuple) -> str:
        """Walk the YAML tree along `path`; empty string when any key is missing"""
        node: Any = self._prompts_cache or {}
        for key in path:
            if not isinstance(node, dict):
                return ""
            node = node.get(key)
        return node.strip() if isinstance(node, str) else ""

    def _substitute_variables(self, prompt_text: str, **template_vars) -> str:
        """Substitute variables in prompt text"""
        if not prompt_text or not template_vars:
            return prompt_text

        try:
            result = prompt_text.format(**template_vars)
            logger.debug(f"Substituted prompt length: {len(result)} characters")
            return result
        except KeyError as e:
            logger.warning(f"Missing variable {e} in prompt template")
            return prompt_text


FALLBACK_PROMPTS = {
    "chapter_analysis": {
        "critique": """You are an expert literary critic providing feedback on a novel-in-progress. Use the provided OVERALL PLOT SUMMARY for context on the entire story. Analyze the current chapter in relation to the plot summary and its chapter number in the sequence. Focus on plot consistency, character development, and pacing, assign an assessment score 1-10, and finish with a separate CHAPTER SUMMARY section.""",
        "summarize": """You are a helpful writing assistant. Provide a comprehensive summary of the entire story using the OVERALL PLOT SUMMARY as context as well as the CURRENT CHAPTER.""",
        "user": """**1. OVERALL PLOT SUMMARY:**
---
{story_context}
---

**2. RECENT PRECEDING CHAPTERS:**
---
{recent_chapters}
---

**3. CURRENT CHAPTER ({chapter_number}) FOR REVIEW:**
---
{content}""",
    },
    "part_analysis": {
        "user": """**OVERALL PLOT SUMMARY:**
---
{story_context}
---

**SELECTED CHAPTERS FOR ANALYSIS:**
---
{part_context}""",
    },
}

FALLBACK_PLACEHOLDERS = {
    "story_context": "No overall summary provided.",
    "recent_chapters": "No preceding chapters.",
}

# Global prompt manager instance
prompt_manager = PromptManager()
