"""
GenBI Backgrounds.

Recurring pollers that reconcile remote AI task status into persisted
threads, thread responses and asking tasks. One tracker per task kind.
"""

from genbi.backgrounds.adjustment import AdjustmentBackgroundTaskTracker, AdjustmentTaskInput
from genbi.backgrounds.asking_task_tracker import AskingTaskTracker
from genbi.backgrounds.breakdown import BreakdownBackgroundTracker
from genbi.backgrounds.chart import ChartAdjustmentBackgroundTracker, ChartBackgroundTracker
from genbi.backgrounds.recommend_questions import ThreadRecommendQuestionBackgroundTracker
from genbi.backgrounds.text_based_answer import TextBasedAnswerBackgroundTracker
from genbi.backgrounds.tracker import BackgroundTracker

__all__ = [
    "AdjustmentBackgroundTaskTracker",
    "AdjustmentTaskInput",
    "AskingTaskTracker",
    "BackgroundTracker",
    "BreakdownBackgroundTracker",
    "ChartAdjustmentBackgroundTracker",
    "ChartBackgroundTracker",
    "TextBasedAnswerBackgroundTracker",
    "ThreadRecommendQuestionBackgroundTracker",
]
