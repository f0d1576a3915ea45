import functools
import json

# Результаты ассистента могут содержать datetime и прочие не-JSON значения
json_encoder = functools.partial(json.dumps, ensure_ascii=False, default=str)
