"""
Prompt templates for every section.

The first-stage sections go to the chat-completion provider as a system
instruction plus a user prompt. The synthesis prompt is sent as one combined
prompt to the single-prompt provider.
"""

from __future__ import annotations

from intellimaker.markup import EMPHASIS_CLOSE, EMPHASIS_OPEN
from intellimaker.models import FirstStageResults, Tag
from intellimaker.providers import Prompt

# ── Counts ─────────────────────────────────────────────────────────────────────

PHRASE_COUNT = 5
TRIVIA_COUNT = 5
GLOSSARY_COUNT = 8
KEY_PERSON_COUNT = 5
REMARK_COUNT = 6
REMARK_MAX_CHARS = 100

_JSON_ONLY = (
    "正しいJSONのみを返し、追加の説明やコメントや改行や制御文字、"
    "コードブロック記号は含めないでください。"
)
_EXAMPLE_KEYWORD = f"{EMPHASIS_OPEN}重要な用語{EMPHASIS_CLOSE}"

SYSTEM_INSTRUCTIONS: dict[str, str] = {
    "phrases": (
        "あなたは業界の事情通です。相手に「こいつわかってるな」と思わせる、"
        "知り合いに話すような短いセリフを考えるのが得意です。"
        "出力は必ず指定されたJSONフォーマットに従ってください。"
    ),
    "trivia": (
        "あなたは雑学の専門家です。正確で、人に話したくなる意外な豆知識を紹介します。"
        "出力は必ず指定されたJSONフォーマットに従ってください。"
    ),
    "glossary": (
        "あなたは専門用語をやさしく解説する編集者です。"
        "出力は必ず指定されたJSONフォーマットに従ってください。"
    ),
    "key_persons": (
        "あなたは業界の人物に詳しいリサーチャーです。実在する人物のみを挙げてください。"
        "出力は必ず指定されたJSONフォーマットに従ってください。"
    ),
}


# ── First-stage prompts ────────────────────────────────────────────────────────


def phrases_prompt(topic: str) -> Prompt:
    tags = "\n".join(
        f"- {tag.value}：{desc}"
        for tag, desc in (
            (Tag.TREND, "最新の動向や流行を示す情報"),
            (Tag.ISSUE, "業界や分野における課題や問題点を指摘する情報"),
            (Tag.COMPETITIVE, f"{topic}の競合他社や競合製品に関する洞察"),
            (Tag.COMMENDATION, "業界内での評価や成果に関する情報"),
        )
    )
    user = f"""
キーワード「{topic}」について、マニアやクライアントから「こいつわかってるな」「お、そんなことまで知ってるんだ」「君、賢いね」と思わせるような、短くて知り合いに話すようなセリフを{PHRASE_COUNT}つ生成してください。各セリフには素人にもわかる詳しい200文字以上の背景説明と内容に応じた推奨度（0〜5）を付けてください。

セリフの中で重要なキーワードや専門用語や大事なポイントには{EMPHASIS_OPEN}タグを付けてください。例: {_EXAMPLE_KEYWORD}
背景説明には{EMPHASIS_OPEN}タグを使用しないでください。

以下の4つのタグを当てはまる場合にのみ付けてください：
{tags}

これらのタグに関連する情報を含むセリフを優先的に生成してください。

以下のJSONフォーマットで出力してください。{_JSON_ONLY}

{{"phrases": [{{"quote": "セリフ1（{EMPHASIS_OPEN}タグ付き）", "background": "背景説明1（タグなし）", "rating": 5, "tags": ["{Tag.TREND.value}", "{Tag.COMPETITIVE.value}"]}}]}}
"""
    return Prompt(system=SYSTEM_INSTRUCTIONS["phrases"], user=user.strip())


def trivia_prompt(topic: str) -> Prompt:
    user = f"""
キーワード「{topic}」に関する、人に話したくなる意外な雑学を{TRIVIA_COUNT}つ生成してください。各雑学は100文字程度で、事実に基づいた内容にしてください。

雑学の中で重要なキーワードや専門用語には{EMPHASIS_OPEN}タグを付けてください。例: {_EXAMPLE_KEYWORD}

以下のJSONフォーマットで出力してください。{_JSON_ONLY}

{{"trivia": [{{"content": "雑学1（{EMPHASIS_OPEN}タグ付き）"}}]}}
"""
    return Prompt(system=SYSTEM_INSTRUCTIONS["trivia"], user=user.strip())


def glossary_prompt(topic: str) -> Prompt:
    user = f"""
キーワード「{topic}」に関連する{GLOSSARY_COUNT}つの重要な用語（人物名は含めないでください）とその素人にもわかる詳しい100文字以上の説明を生成してください。
以下のJSONフォーマットで出力してください。{_JSON_ONLY}

{{"glossary": [{{"term": "用語1", "definition": "定義1"}}]}}
"""
    return Prompt(system=SYSTEM_INSTRUCTIONS["glossary"], user=user.strip())


def key_persons_prompt(topic: str) -> Prompt:
    user = f"""
キーワード「{topic}」に関連する重要な人物を{KEY_PERSON_COUNT}人選び、その人物の名前、素人にもわかる詳しい100文字以上の説明、TwitterとLinkedInのURL、公式ウェブサイトのURLを生成してください。URLがわからない場合は空文字にしてください。
以下のJSONフォーマットで出力してください。{_JSON_ONLY}

{{"keyPersons": [{{"name": "人物名1", "description": "人物の説明1", "twitter": "https://twitter.com/example1", "linkedin": "https://www.linkedin.com/in/example1", "website": "https://example1.com"}}]}}
"""
    return Prompt(system=SYSTEM_INSTRUCTIONS["key_persons"], user=user.strip())


# ── Synthesis ──────────────────────────────────────────────────────────────────

#: Lead-ins the synthesised remarks should open with.
REMARK_LEAD_INS = ("実は", "ちなみに", "知ってる？", "意外と知られてないけど", "ここだけの話")


def synthesis_context(results: FirstStageResults) -> str:
    """Flatten the first-stage results into one plain-text context block."""
    lines: list[str] = []
    if results.topics:
        lines.append("【セリフ】")
        lines.extend(f"- {p.quote.plain}" for p in results.topics)
    if results.trivia:
        lines.append("【雑学】")
        lines.extend(f"- {t.content.plain}" for t in results.trivia)
    if results.glossary:
        lines.append("【用語】")
        lines.extend(f"- {g.term}: {g.definition}" for g in results.glossary)
    if results.key_persons:
        lines.append("【キーパーソン】")
        lines.extend(f"- {k.name}: {k.description}" for k in results.key_persons)
    return "\n".join(lines) or "（参考情報なし）"


def synthesis_prompt(topic: str, results: FirstStageResults) -> Prompt:
    lead_ins = "」「".join(REMARK_LEAD_INS)
    user = f"""
以下の参考情報をもとに、キーワード「{topic}」について友人との雑談でさらっと言えると「すごい！」と思われる一言を{REMARK_COUNT}つ生成してください。

条件:
- 各一言は{REMARK_MAX_CHARS}文字以内
- 必ず「{topic}」を含める
- 「{lead_ins}」のような切り出しで始める
- 親しみやすい話し言葉で、自分の意見のように話す
- 重要なキーワードや専門用語には{EMPHASIS_OPEN}タグを付ける。例: {_EXAMPLE_KEYWORD}

参考情報:
{synthesis_context(results)}

以下のJSON配列のフォーマットで出力してください。{_JSON_ONLY}

[{{"content": "一言1（{EMPHASIS_OPEN}タグ付き）"}}]
"""
    return Prompt(system="", user=user.strip())
