"""Lua scripts that keep each queue state change atomic on the broker."""

# KEYS: job, wait, completed, failed
# ARGV: id, payload, max_attempts, now_ms
ADD_JOB = """
local state = redis.call("HGET", KEYS[1], "state")
if state == "waiting" or state == "delayed" or state == "active" then
  return 0
end
if state then
  redis.call("LREM", KEYS[3], 0, ARGV[1])
  redis.call("LREM", KEYS[4], 0, ARGV[1])
  redis.call("DEL", KEYS[1])
end
redis.call("HSET", KEYS[1],
  "id", ARGV[1], "payload", ARGV[2], "state", "waiting",
  "attempts_made", 0, "max_attempts", ARGV[3], "created_at", ARGV[4])
redis.call("LPUSH", KEYS[2], ARGV[1])
return 1
"""

# KEYS: job, wait, delayed
# ARGV: id
REMOVE_IF_WAITING = """
local state = redis.call("HGET", KEYS[1], "state")
if state == "waiting" then
  redis.call("LREM", KEYS[2], 0, ARGV[1])
elseif state == "delayed" then
  redis.call("ZREM", KEYS[3], ARGV[1])
else
  return 0
end
redis.call("DEL", KEYS[1])
return 1
"""

# KEYS: delayed, wait
# ARGV: now_ms, job_prefix, limit
PROMOTE_DELAYED = """
local ids = redis.call("ZRANGEBYSCORE", KEYS[1], "-inf", ARGV[1], "LIMIT", 0, tonumber(ARGV[3]))
for _, id in ipairs(ids) do
  redis.call("ZREM", KEYS[1], id)
  redis.call("HSET", ARGV[2] .. id, "state", "waiting")
  redis.call("LPUSH", KEYS[2], id)
end
return #ids
"""

# KEYS: job, lock, active
# ARGV: id, token, timeout_ms, now_ms
MARK_ACTIVE = """
if redis.call("EXISTS", KEYS[1]) == 0 then
  redis.call("LREM", KEYS[3], 0, ARGV[1])
  return 0
end
redis.call("HSET", KEYS[1], "state", "active", "processed_at", ARGV[4])
redis.call("SET", KEYS[2], ARGV[2], "PX", tonumber(ARGV[3]))
return redis.call("HGETALL", KEYS[1])
"""

# KEYS: job, active, finished_list, lock
# ARGV: id, token, state, now_ms, keep, job_prefix, field1, value1, ...
FINISH_JOB = """
if redis.call("GET", KEYS[4]) ~= ARGV[2] then
  return -1
end
redis.call("LREM", KEYS[2], 0, ARGV[1])
redis.call("DEL", KEYS[4])
redis.call("HSET", KEYS[1], "state", ARGV[3], "finished_at", ARGV[4])
for i = 7, #ARGV, 2 do
  redis.call("HSET", KEYS[1], ARGV[i], ARGV[i + 1])
end
redis.call("LPUSH", KEYS[3], ARGV[1])
local keep = tonumber(ARGV[5])
local stale = redis.call("LRANGE", KEYS[3], keep, -1)
for _, id in ipairs(stale) do
  redis.call("DEL", ARGV[6] .. id)
end
if keep > 0 then
  redis.call("LTRIM", KEYS[3], 0, keep - 1)
else
  redis.call("DEL", KEYS[3])
end
return 1
"""

# KEYS: job, active, delayed, lock
# ARGV: id, token, run_at_ms, attempts_made, reason
RETRY_LATER = """
if redis.call("GET", KEYS[4]) ~= ARGV[2] then
  return -1
end
redis.call("LREM", KEYS[2], 0, ARGV[1])
redis.call("DEL", KEYS[4])
redis.call("HSET", KEYS[1], "state", "delayed",
  "attempts_made", ARGV[4], "failed_reason", ARGV[5])
redis.call("ZADD", KEYS[3], tonumber(ARGV[3]), ARGV[1])
return 1
"""

# KEYS: active, wait, delayed, failed
# ARGV: job_prefix, lock_prefix, include_unmarked ("1" at startup), now_ms,
#       backoff_ms, keep_failed, reason
# A job whose lock expired while active used up an attempt: it is delayed with
# backoff, or dead-lettered once attempts run out. Jobs popped but never marked
# active did not run and go straight back to wait.
REQUEUE_STALLED = """
local requeued = {}
local dead = {}
local ids = redis.call("LRANGE", KEYS[1], 0, -1)
for _, id in ipairs(ids) do
  local job = ARGV[1] .. id
  if redis.call("EXISTS", ARGV[2] .. id) == 0 then
    local state = redis.call("HGET", job, "state")
    if not state then
      redis.call("LREM", KEYS[1], 0, id)
    elseif state == "active" then
      redis.call("LREM", KEYS[1], 0, id)
      redis.call("HINCRBY", job, "stalled_count", 1)
      local attempts = redis.call("HINCRBY", job, "attempts_made", 1)
      local max_attempts = tonumber(redis.call("HGET", job, "max_attempts")) or 1
      if attempts < max_attempts then
        local delay = math.floor(tonumber(ARGV[5]) * (2 ^ (attempts - 1)))
        redis.call("HSET", job, "state", "delayed", "failed_reason", ARGV[7])
        redis.call("ZADD", KEYS[3], tonumber(ARGV[4]) + delay, id)
        table.insert(requeued, id)
      else
        redis.call("HSET", job, "state", "failed",
          "finished_at", ARGV[4], "failed_reason", ARGV[7])
        redis.call("LPUSH", KEYS[4], id)
        local keep = tonumber(ARGV[6])
        local stale = redis.call("LRANGE", KEYS[4], keep, -1)
        for _, old in ipairs(stale) do
          redis.call("DEL", ARGV[1] .. old)
        end
        if keep > 0 then
          redis.call("LTRIM", KEYS[4], 0, keep - 1)
        else
          redis.call("DEL", KEYS[4])
        end
        table.insert(dead, id)
      end
    elseif ARGV[3] == "1" then
      redis.call("LREM", KEYS[1], 0, id)
      redis.call("HSET", job, "state", "waiting")
      redis.call("RPUSH", KEYS[2], id)
      table.insert(requeued, id)
    end
  end
end
return {requeued, dead}
"""
