"""Wave/group generation pipeline.

Runs the field groups of one entity type in waves:
  weapon      [identity] → [description, damage, properties, physical]
  equipment   [identity] → [description, defense, properties, physical]
  consumable  [identity] → [description, damage, uses, properties, physical]
  tool, loot  [identity] → [description, properties, physical]
  npc         [concept] → [mechanical] → [coreStats]
              → [savesSkills, sensesLanguages, attacks] → [abilities] → [description]

Each wave sees the merged output of every earlier wave. Groups within a wave
run concurrently and may fail independently.
"""

from .orchestrator import PipelineExhausted, UnsupportedType, run_pipeline  # noqa: F401
from .profiles import EntityProfile, build_profiles  # noqa: F401
