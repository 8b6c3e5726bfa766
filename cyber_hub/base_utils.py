# cyber_hub/base_utils.py

import logging
import re

import commentjson
import yaml
from json_repair import repair_json

logger = logging.getLogger("cyber_hub")


class ReplyParseError(Exception):
    pass


class BaseUtils():

    COLOR_CODES = {
        'red': '31', 'green': '32', 'yellow': '33', 'blue': '34', 'magenta': '35', 'cyan': '36',
        'bright_red': '91', 'bright_green': '92', 'bright_yellow': '93', 'bright_cyan': '96',
    }

    def color_print(self, text, color=None, level=logging.INFO):
        if color and color.lower() in self.COLOR_CODES:
            text = f"\033[{self.COLOR_CODES[color.lower()]}m{text}\033[0m"
        logger.log(level, str(text))
        return False

    def clean_triple_backticks(self, text) -> str:
        pattern = r'```[a-zA-Z]*\n?|```\n?'
        return re.sub(pattern, '', text)

    def unsafe_string_format(self, dest_string, **kwargs):
        """
        Replaces only the {key} placeholders named in kwargs and leaves every
        other brace alone, so prompt templates can quote JSON literally.
        """
        missing_keys = []

        def replacer(match):
            key = match.group(1)
            if key in kwargs:
                return str(kwargs[key])
            missing_keys.append(key)
            return match.group(0)

        result = re.sub(r'\{(\w+)\}', replacer, dest_string)
        if missing_keys:
            logger.debug(f"unsafe_string_format left placeholders untouched: {', '.join(missing_keys)}")
        return result

    def _sanitize_json_string(self, input_str: str) -> str:
        """
        Makes model output closer to valid JSON before the YAML attempt:
        strips fences and // or /* */ comments, escapes stray backslashes and
        literal newlines inside string values.
        """
        def process_string_segment(match):
            content = match.group(1)
            content = re.sub(r'(?<!\\)\\(?![bfnrtu"\\/])', r'\\\\', content)
            content = re.sub(r'(?<!\\)\n', r'\\n', content)
            return f'"{content}"'

        input_str = self.clean_triple_backticks(input_str)
        input_str = re.sub(r'^\s*//.*?$|/\*.*?\*/', '', input_str, flags=re.MULTILINE | re.DOTALL)
        return re.sub(r'(?<!\\)"((?:[^"\\]|\\.)*?)"', process_string_segment, input_str, flags=re.DOTALL)

    def _try_load(self, json_str: str):
        err = ""
        try:
            data = commentjson.loads(self.clean_triple_backticks(json_str))
            if isinstance(data, (dict, list)):
                return data, ""
            err = f"expected an object or a list, got {type(data).__name__}"
        except Exception as e:
            err = str(e)
        try:
            data = yaml.safe_load(self._sanitize_json_string(json_str))
            if isinstance(data, (dict, list)):
                return data, ""
            err += "\n--\nYAML parsing did not produce an object"
        except Exception as e:
            err += "\n--\n" + str(e)
        return None, err

    def load_fault_tolerant_json(self, json_str):
        """
        Parse a model reply that should be JSON.

        Tries commentjson, then YAML on a sanitized copy, then json_repair.
        Raises ReplyParseError when nothing yields an object or a list.
        """
        if not isinstance(json_str, str) or not json_str.strip():
            raise ReplyParseError("load_fault_tolerant_json: empty reply")

        data, err = self._try_load(json_str)
        if data is not None:
            return data

        repaired = repair_json(json_str)
        r_data, r_err = self._try_load(repaired)
        if r_data is not None:
            return r_data

        raise ReplyParseError(f"load_fault_tolerant_json: JSON parsing failed: {err}\n--\n{r_err}")
