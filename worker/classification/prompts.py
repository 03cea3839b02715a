"""Prompt templates and response shapes for the classifier."""

SYSTEM_PROMPT = (
    "You are a website marketing effectiveness analyst. "
    "Answer with a single JSON object and nothing else."
)

HERO_SHAPE: dict[str, str] = {
    "audience_named": "boolean",
    "audience_evidence": "string|null",
    "outcome_present": "boolean",
    "outcome_evidence": "string|null",
    "capability_clear": "boolean",
    "capability_evidence": "string|null",
    "brevity_check": "boolean",
    "brevity_evidence": "string|null",
    "confidence": "number",
}

HERO_PROMPT = """Analyze the hero section copy for these criteria. Return JSON only:
- audience_named: Is the target audience clearly identified? Include the actual audience mentioned.
- outcome_present: Is a specific outcome or benefit mentioned? Include the outcome text.
- capability_clear: Is what the company does clearly stated? Include the capability description.
- brevity_check: Is the message concise (under {hero_words} words for main headline)? Include word count.
{image_hint}
Hero content: {content}

Return JSON with both boolean checks and evidence:
{{
  "audience_named": boolean,
  "audience_evidence": "exact text identifying audience or null",
  "outcome_present": boolean,
  "outcome_evidence": "exact text describing outcome or null",
  "capability_clear": boolean,
  "capability_evidence": "exact text describing capability or null",
  "brevity_check": boolean,
  "brevity_evidence": "word count and headline text or null",
  "confidence": 0-1
}}"""

STORY_SHAPE: dict[str, str] = {
    "pov_present": "boolean",
    "pov_evidence": "string|null",
    "mechanism_named": "boolean",
    "mechanism_evidence": "string|null",
    "outcomes_recent": "boolean",
    "outcomes_evidence": "string|null",
    "case_complete": "boolean",
    "case_evidence": "string|null",
    "confidence": "number",
}

STORY_PROMPT = """Analyze content for brand story elements. Return JSON only:
- pov_present: Is there a clear point of view or unique perspective? Include the POV text.
- mechanism_named: Is the specific method/approach mentioned? Include the mechanism description.
- outcomes_recent: Are there outcomes from the last {recent_months} months mentioned? Include the outcome examples.
- case_complete: Are there complete case studies or success stories? Include case study reference.
{image_hint}
Content: {content}

Return JSON with both boolean checks and evidence:
{{
  "pov_present": boolean,
  "pov_evidence": "exact text showing POV or null",
  "mechanism_named": boolean,
  "mechanism_evidence": "exact text describing mechanism or null",
  "outcomes_recent": boolean,
  "outcomes_evidence": "exact text of recent outcomes or null",
  "case_complete": boolean,
  "case_evidence": "case study description or null",
  "confidence": 0-1
}}"""

IMAGE_HINT = (
    "A full-page screenshot of the rendered site is attached. Use it to judge how "
    "the copy is presented, not only what the HTML says.\n"
)

INSIGHTS_SHAPE: dict[str, str] = {
    "primary_issue": "string",
    "root_cause": "string",
    "business_impact": "string",
    "key_insight": "string",
    "quick_wins": "array",
    "strategic_initiatives": "array",
    "interconnected_benefits": "string",
    "industry_considerations": "string",
    "confidence": "number",
}

INSIGHTS_PROMPT = """Analyze website effectiveness data and generate actionable insights for {client_name} in the {industry} industry ({business_size} business).

Website URL: {website_url}
Overall Score: {overall_score}/10

Criterion Performance:
{criteria_data}

Evidence Summary:
{evidence_summary}

ANALYSIS FRAMEWORK:
Identify interconnected issues and focus on ROI potential. Avoid generic advice like "improve user experience" or "update content regularly".

INSTRUCTIONS:
1. Primary Issue: What is the main effectiveness problem based on the data?
2. Root Cause: Why does this problem exist (technical, strategic, content or UX factors)?
3. Business Impact: How does this affect {client_name}'s business goals?
4. Industry Context: Consider {industry} industry standards.
5. Quick Wins: Up to 3 changes that can ship within 30 days.
6. Strategic Initiatives: Up to 2 larger investments with ROI potential.

Return JSON:
{{
  "primary_issue": "one sentence",
  "root_cause": "one or two sentences",
  "business_impact": "one or two sentences",
  "key_insight": "the single most important takeaway",
  "quick_wins": [
    {{"action": "...", "priority": "high|medium|low", "effort": "low|medium|high",
      "expected_impact": "...", "rationale": "...", "timeline": "..."}}
  ],
  "strategic_initiatives": [
    {{"action": "...", "priority": "high|medium|low", "effort": "low|medium|high",
      "expected_impact": "...", "rationale": "...", "timeline": "...", "roi_potential": "..."}}
  ],
  "interconnected_benefits": "how the fixes reinforce each other",
  "industry_considerations": "industry-specific notes",
  "confidence": 0-1
}}"""
