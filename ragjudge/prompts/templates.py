"""Prompt templates for each judge call.

Templates use ``str.format`` placeholders; literal JSON braces are doubled.
Every task prompt asks for a JSON object so replies can be parsed.
"""

# ---------------------------------------------------------------------------
# Faithfulness
# ---------------------------------------------------------------------------

FAITHFULNESS_SYSTEM = """\
You are an expert at evaluating the faithfulness of AI-generated answers.
Faithfulness measures whether the answer is grounded in the provided context.
A faithful answer only contains information that can be verified from the context.
Always return results in valid JSON format.
"""

FAITHFULNESS_TASK = """\
Evaluate the faithfulness of the following answer based on the provided context.
Extract claims from the answer and verify each against the context.

Context:
{context}

Answer:
{answer}

Return a JSON object with this structure:
{{
    "score": 0.0-1.0,
    "reasoning": "explanation of the score",
    "claims": [
        {{"claim": "extracted claim", "supported": true/false}}
    ]
}}

Score guidelines:
- 1.0: All claims are fully supported by the context
- 0.5-0.9: Most claims are supported, some minor unsupported details
- 0.1-0.4: Some claims are supported, significant unsupported content
- 0.0: No claims are supported or answer contradicts context
"""


# ---------------------------------------------------------------------------
# Relevancy
# ---------------------------------------------------------------------------

RELEVANCY_SYSTEM = """\
You are an expert at evaluating the relevancy of AI-generated answers.
Relevancy measures how well the answer addresses the question asked.
A relevant answer directly responds to what was asked.
Always return results in valid JSON format.
"""

RELEVANCY_CONTEXT_SECTION = """

Context (for reference):
{context}"""

RELEVANCY_TASK = """\
Evaluate the relevancy of the following answer to the given question.
Consider whether the answer directly addresses what was asked.

Question:
{question}

Answer:
{answer}{context_section}

Return a JSON object with this structure:
{{
    "score": 0.0-1.0,
    "reasoning": "explanation of the score"
}}

Score guidelines:
- 1.0: Answer completely and directly addresses the question
- 0.7-0.9: Answer mostly addresses the question with minor gaps
- 0.4-0.6: Answer partially addresses the question
- 0.1-0.3: Answer tangentially related to the question
- 0.0: Answer completely unrelated to the question
"""


# ---------------------------------------------------------------------------
# Answerability
# ---------------------------------------------------------------------------

ANSWERABILITY_SYSTEM = """\
You are an expert at evaluating whether questions can be answered from given contexts.
Answerability measures whether the context contains sufficient information to answer the question.
Always return results in valid JSON format.
"""

ANSWERABILITY_TASK = """\
Evaluate whether the following question can be answered using the provided context.
Consider if the context contains all necessary information to fully answer the question.

Context:
{context}

Question:
{question}

Return a JSON object with this structure:
{{
    "score": 0.0-1.0,
    "reasoning": "explanation of the score",
    "answerable": true/false,
    "evidence": "relevant evidence from context if answerable"
}}

Score guidelines (A-D grading):
- 1.0 (Grade A): Context fully answers the question with all required information
- 0.7-0.9 (Grade B): Context provides most information, minor details missing
- 0.3-0.6 (Grade C): Question is related but context cannot answer it adequately
- 0.0-0.2 (Grade D): Question is unrelated to the context
"""


# ---------------------------------------------------------------------------
# QA generation
# ---------------------------------------------------------------------------

QA_GENERATION_SYSTEM = """\
You are an expert at generating high-quality question-answer pairs from text.
Generate questions that test comprehension and understanding of the content.
Ensure answers are accurate and directly supported by the provided context.
Always return results in valid JSON format.
"""

QA_GENERATION_TASK = """\
Generate {pairs_per_chunk} question-answer pairs from the following context.

Requirements:
- Questions should be clear and specific
- Answers should be directly supported by the context
- Answer length should be between {min_answer_length} and {max_answer_length} characters
- Question types to include: {question_types}
{multi_hop_instruction}
{reasoning_instruction}

Context:
{context}

Return a JSON object with this structure:
{{
    "qa_pairs": [
        {{"question": "...", "answer": "..."}}
    ]
}}
"""

QA_MULTI_HOP_INSTRUCTION = (
    "Include multi-hop questions that require connecting information "
    "from different parts of the text."
)
QA_REASONING_INSTRUCTION = "Include reasoning questions that require inference."


# ---------------------------------------------------------------------------
# Relationship discovery
# ---------------------------------------------------------------------------

RELATIONSHIP_SYSTEM = """\
You are an expert at analyzing semantic relationships between document fragments.
Your task is to identify meaningful relationships that would help in understanding
how different parts of a document or document collection relate to each other.
Always provide accurate, well-reasoned relationship classifications with confidence scores.
"""

RELATIONSHIP_TASK = """\
Analyze the relationship between these two text fragments.

## Fragment A (Source)
ID: {source_id}
Content: {source_content}

## Fragment B (Target)
ID: {target_id}
Content: {target_content}

## Instructions
Identify semantic relationships between Fragment A and Fragment B.
Consider these relationship types: {relationship_types}

Relationship type definitions:
{type_definitions}

## Output Format
Return a JSON object listing the relationships found:
```json
{{
    "relationships": [
        {{
            "type": "RelationshipType",
            "confidence": 0.0-1.0,
            "explanation": "Brief explanation",
            "bidirectional": true/false
        }}
    ]
}}
```

Only include relationships with confidence >= {min_confidence}.
Maximum {max_relationships} relationships.
If no meaningful relationship exists, return an empty "relationships" array.
{explanation_instruction}
"""

RELATIONSHIP_WITH_EXPLANATIONS = "Include brief explanations for each relationship."
RELATIONSHIP_WITHOUT_EXPLANATIONS = "Omit explanations."


# ---------------------------------------------------------------------------
# Chunk relevance (chunk filtering)
# ---------------------------------------------------------------------------

CHUNK_RELEVANCE_SYSTEM = """\
You are an expert at judging whether a retrieved text chunk helps answer a query.
Always return results in valid JSON format.
"""

CHUNK_RELEVANCE_TASK = """\
Rate the relevance of this text chunk to the query.

Query: {query}

Chunk:
{content}

Return a JSON object with this structure:
{{
    "score": 0.0-1.0,
    "reasoning": "one sentence"
}}

Score guidelines:
- 0.0: completely irrelevant
- 0.5: somewhat relevant
- 1.0: highly relevant
"""


# ---------------------------------------------------------------------------
# Question suggestion
# ---------------------------------------------------------------------------

QUESTION_SUGGESTION_SYSTEM = """\
You are an expert at generating insightful follow-up questions.
Generate questions that help users explore topics more deeply.
Questions should be relevant, clear, and encourage further exploration.
Always return results in valid JSON format.
"""

QUESTION_SUGGESTION_TASK = """\
Based on the following context, suggest {max_suggestions} follow-up questions.

Question categories to include: {categories}
{reasoning_instruction}

Context:
{context}

Return a JSON object with this structure:
{{
    "suggestions": [
        {{
            "text": "question text",
            "category": "FollowUp|Clarification|DeepDive|Related|Alternative",
            "relevance": 0.0-1.0,
            "reasoning": "optional explanation"
        }}
    ]
}}

Category definitions:
{category_definitions}
"""

SUGGESTION_REASONING_INSTRUCTION = (
    "Include a 'reasoning' field explaining why each question is relevant."
)
