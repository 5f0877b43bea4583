"""规划结果解码"""

from .plan_decoder import PlanDecoder, clean_response, decode_plan

__all__ = ["PlanDecoder", "clean_response", "decode_plan"]
