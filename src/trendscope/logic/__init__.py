from trendscope.logic.comparison import PeriodComparator
from trendscope.logic.merger import SeriesMerger
from trendscope.logic.normalizer import SeriesNormalizer
from trendscope.logic.trends import TrendAnalyzer, TrendClassifier

__all__ = ["PeriodComparator", "SeriesMerger", "SeriesNormalizer", "TrendAnalyzer", "TrendClassifier"]
