from pathlib import Path
from typing import Dict


class PromptTemplate:
    """Шаблон промпта в Markdown файле"""

    def __init__(self, template_path: Path):
        self.template_path = Path(template_path)
        self._template = None

    def load(self) -> str:
        """Загружает шаблон из файла (один раз)"""
        if self._template is None:
            with open(self.template_path, 'r', encoding='utf-8') as f:
                self._template = f.read()
        return self._template

    def format(self, **kwargs) -> str:
        return self.load().format(**kwargs)


class PromptManager:
    """Менеджер промптов из папки app/prompts"""

    def __init__(self, template_dir: str = None):
        if template_dir is None:
            self.template_dir = Path(__file__).parent.parent / "prompts"  # app/utils -> app
        else:
            self.template_dir = Path(template_dir)

        self._templates: Dict[str, PromptTemplate] = {}

    def get_template(self, name: str) -> PromptTemplate:
        if name not in self._templates:
            template_path = self.template_dir / f"{name}.md"
            if not template_path.exists():
                raise FileNotFoundError(f"Prompt template '{name}' not found at {template_path}")
            self._templates[name] = PromptTemplate(template_path)

        return self._templates[name]

    def render(self, template_name: str, **kwargs) -> str:
        """Рендерит шаблон с параметрами"""
        return self.get_template(template_name).format(**kwargs)

    def list_templates(self) -> list[str]:
        if not self.template_dir.exists():
            return []
        return sorted(path.stem for path in self.template_dir.glob("*.md"))


prompt_manager = PromptManager()
