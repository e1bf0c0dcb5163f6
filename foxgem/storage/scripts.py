"""Lua scripts for every multi-field write.

Each script runs atomically inside Redis, so the read-check-write sequences
below (profile creation, ``$max`` on the best score, the weekly bonus reset
followed by the increment) cannot interleave with concurrent requests.
"""

from __future__ import annotations

from dataclasses import dataclass

from redis.asyncio import Redis
from redis.commands.core import AsyncScript

# KEYS: profile, profiles set, total rank, sequence
# ARGV: user_id, now, then display field/value pairs starting at `field_start`
_ENSURE_PROFILE = """
local created = 0
if redis.call('EXISTS', KEYS[1]) == 0 then
  local profile_seq = redis.call('INCR', KEYS[4])
  redis.call('HSET', KEYS[1],
    'user_id', ARGV[1], 'join_date', ARGV[2], 'seq', profile_seq,
    'referral_count', 0, 'referral_bonus', 0, 'last_bonus_reset', ARGV[2],
    'best_score', 0, 'games_played', 0)
  redis.call('SADD', KEYS[2], ARGV[1])
  redis.call('ZADD', KEYS[3], 0, ARGV[1])
  created = 1
end
for i = field_start, #ARGV, 2 do
  redis.call('HSET', KEYS[1], ARGV[i], ARGV[i + 1])
end
"""

UPSERT_PROFILE = (
    "local field_start = 3\n"
    + _ENSURE_PROFILE
    + """
return created
"""
)

# KEYS: profile, profiles set, total rank, sequence, ledger, best rank
# ARGV: user_id, now, score, display field/value pairs
SUBMIT_SCORE = (
    "local field_start = 4\n"
    + _ENSURE_PROFILE
    + """
local seq = redis.call('INCR', KEYS[4])
local score = tonumber(ARGV[3])
redis.call('RPUSH', KEYS[5],
  '{"seq":' .. seq .. ',"user_id":' .. ARGV[1] ..
  ',"score":' .. ARGV[3] .. ',"timestamp":' .. ARGV[2] .. '}')
local games = redis.call('HINCRBY', KEYS[1], 'games_played', 1)
redis.call('HSET', KEYS[1], 'last_played', ARGV[2])
local best = tonumber(redis.call('HGET', KEYS[1], 'best_score')) or 0
if not redis.call('HGET', KEYS[1], 'best_seq') or score > best then
  best = score
  redis.call('HSET', KEYS[1], 'best_score', ARGV[3], 'best_seq', seq)
  redis.call('ZADD', KEYS[6], score, ARGV[1])
end
local bonus = tonumber(redis.call('HGET', KEYS[1], 'referral_bonus')) or 0
redis.call('ZADD', KEYS[3], best + bonus, ARGV[1])
return {seq, created, best, games}
"""
)

# KEYS: profile, referral codes hash
# ARGV: user_id, candidate code
ISSUE_REFERRAL_CODE = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return {-1}
end
local current = redis.call('HGET', KEYS[1], 'referral_code')
if current then
  return {1, current}
end
if redis.call('HSETNX', KEYS[2], ARGV[2], ARGV[1]) == 0 then
  return {0}
end
redis.call('HSET', KEYS[1], 'referral_code', ARGV[2])
return {1, ARGV[2]}
"""

# KEYS: referrer profile, new user profile, total rank
# ARGV: referrer_id, new_user_id, now, window seconds, reward
ATTRIBUTE_REFERRAL = """
if redis.call('EXISTS', KEYS[1]) == 0 then
  return {-1}
end
if redis.call('EXISTS', KEYS[2]) == 0 then
  return {-2}
end
local inviter = redis.call('HGET', KEYS[2], 'invited_by')
if inviter then
  return {-3, inviter}
end
local now = tonumber(ARGV[3])
local last_reset = tonumber(redis.call('HGET', KEYS[1], 'last_bonus_reset')) or 0
local reset = 0
if now - last_reset >= tonumber(ARGV[4]) then
  redis.call('HSET', KEYS[1], 'referral_bonus', 0, 'last_bonus_reset', ARGV[3])
  reset = 1
end
local count = redis.call('HINCRBY', KEYS[1], 'referral_count', 1)
local bonus = redis.call('HINCRBY', KEYS[1], 'referral_bonus', ARGV[5])
redis.call('HSET', KEYS[2], 'invited_by', ARGV[1])
local best = tonumber(redis.call('HGET', KEYS[1], 'best_score')) or 0
redis.call('ZADD', KEYS[3], best + bonus, ARGV[1])
return {1, count, bonus, reset}
"""

# KEYS: profile, total rank
# ARGV: user_id, now
RESET_BONUS = """
local bonus = tonumber(redis.call('HGET', KEYS[1], 'referral_bonus')) or 0
if bonus <= 0 then
  return 0
end
redis.call('HSET', KEYS[1], 'referral_bonus', 0, 'last_bonus_reset', ARGV[2])
local best = tonumber(redis.call('HGET', KEYS[1], 'best_score')) or 0
redis.call('ZADD', KEYS[2], best, ARGV[1])
return 1
"""


@dataclass(slots=True)
class Scripts:
    upsert_profile: AsyncScript
    submit_score: AsyncScript
    issue_referral_code: AsyncScript
    attribute_referral: AsyncScript
    reset_bonus: AsyncScript


def register_scripts(redis_client: Redis) -> Scripts:
    return Scripts(
        upsert_profile=redis_client.register_script(UPSERT_PROFILE),
        submit_score=redis_client.register_script(SUBMIT_SCORE),
        issue_referral_code=redis_client.register_script(ISSUE_REFERRAL_CODE),
        attribute_referral=redis_client.register_script(ATTRIBUTE_REFERRAL),
        reset_bonus=redis_client.register_script(RESET_BONUS),
    )
