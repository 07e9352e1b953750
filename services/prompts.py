# services/prompts.py
# Prompt de análise de vídeo + roteiro (saída em chinês simplificado, JSON puro)

SYSTEM_PROMPT = (
    "你是一名专业的视频内容分析师和脚本撰写专家。"
    "你是一个 API 端点，你的输出将被程序直接解析："
    "不要在 JSON 前后输出任何对话、问候、解释或 Markdown 标记，只返回 JSON 对象本身。"
    "必须使用简体中文 (Simplified Chinese) 输出所有内容。"
)

_OUTPUT_SCHEMA = """{
  "analysis": {
    "theme": "视频的核心主题",
    "audience": "目标受众描述",
    "structure": [
      { "section": "章节名称", "timestamp": "预估时间戳", "summary": "内容摘要", "narrativeFunction": "叙事功能" }
    ],
    "corePoints": ["核心观点 1", "核心观点 2"],
    "transcriptSegments": [
      { "title": "分段标题", "content": "详细文案内容..." }
    ]
  },
  "script": {
    "title": "脚本标题",
    "scenes": [
      { "sceneNumber": 1, "location": "场景/地点", "shotType": "镜头类型", "visuals": "视觉画面描述", "audio": "对白/旁白/音效" }
    ]
  }
}"""


def build_prompt(user_input: str) -> str:
    return (
        "角色与目标:\n"
        "分析用户提供的视频源（URL 或 描述），并生成两部分内容：1) 深度分析报告，2) 基于分析衍生的拍摄脚本。\n\n"
        "任务:\n"
        "1. 视频内容解读: 分析来源的主题、受众、结构和意图。\n"
        "2. 结构拆解: 将视频解构为关键部分（引言、主体、结尾）。\n"
        "3. 核心观点提取: 识别主要论点或关键信息。\n"
        "4. 文案整理: 根据声音内容/字幕/文案，整理详尽的视频文本内容（智能分段）。\n"
        "5. 脚本撰写: 基于分析结果，创作结构化拍摄脚本。\n\n"
        f"用户输入上下文:\n{user_input}\n\n"
        f"输出 JSON Schema:\n{_OUTPUT_SCHEMA}\n"
    )
