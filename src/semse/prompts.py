STRUCTURING_PROMPT = """Below is an article. Parse the article into a json object containing:

1) REQUIRED! A title. Find a title in the article, or generate one based on the article.
2) A date, if you can find anything looking like a date in the article. Can be empty Output as ISO 8601.

Here is an example:

{
  "title": "Meaningful title",
  "date": "2024-02-28T08:57:26.009Z"
}

Return ONLY the json, nothing else, no explanations!

Here is the article:"""


def build_structuring_prompt(text: str) -> str:
    return f"{STRUCTURING_PROMPT}\n\n{text}"
