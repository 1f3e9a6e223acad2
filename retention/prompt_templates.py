"""Prompt templates for retention and escalation LLM calls using LangChain."""

from langchain_core.prompts import ChatPromptTemplate


# Conversation summary for tutor hand-off
CONVERSATION_SUMMARY_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You are an assistant preparing hand-off notes for a human tutor.
Be factual and brief."""),

    ("human", """Summarize this tutoring conversation in 2-3 sentences, focusing on what the student is trying to learn and where they're struggling:

{transcript}""")
])


# Holistic goal completion judgment
COMPLETION_EVALUATION_PROMPT = ChatPromptTemplate.from_messages([
    ("system", """You are a learning coach who decides whether a student has met a learning goal.
Judge from the evidence only. Respond with a single JSON object and nothing else."""),

    ("human", """Evaluate if a student has completed their learning goal:

Goal: {goal_title}
Description: {goal_description}
Target Outcome: {target_outcome}
Subject: {subject}

Practice Statistics:
{practice_stats}

Recent Session Summaries:
{session_summaries}

Learning Profile:
{learning_profile}

Milestones Completed: {milestones_completed}

Respond in JSON:
{{
  "is_complete": true/false,
  "estimated_progress": 0-100,
  "reasoning": "brief explanation",
  "remaining_gaps": ["any remaining areas to work on"]
}}""")
])
