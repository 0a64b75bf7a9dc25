"""Redis Lua scripts for the limiters.

Redis runs a script to completion before serving any other command. The
sliding-window evict, count and add steps are therefore one atomic
check-and-consume, and two concurrent requests can never both observe
``count < limit`` for the same key. The job counter scripts pair each INCR or
DECR with its expiry or cleanup for the same reason.
"""

# KEYS[1]  rate key (prefix:identifier)
# ARGV[1]  now, epoch milliseconds
# ARGV[2]  window size in milliseconds
# ARGV[3]  max requests per window
# ARGV[4]  unique member for this request (timestamp plus random suffix)
#
# Returns {allowed (0|1), remaining, reset_at_ms, limit}
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
local now = tonumber(ARGV[1])
local window = tonumber(ARGV[2])
local limit = tonumber(ARGV[3])
local member = ARGV[4]

-- Drop entries older than the window; an entry exactly at the boundary still counts
redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. (now - window))

local count = redis.call('ZCARD', key)

if count >= limit then
    local reset_at = now + window
    local oldest = redis.call('ZRANGE', key, 0, 0, 'WITHSCORES')
    if #oldest > 0 then
        reset_at = tonumber(oldest[2]) + window
    end
    return {0, 0, reset_at, limit}
end

redis.call('ZADD', key, now, member)
redis.call('PEXPIRE', key, window)

return {1, limit - count - 1, now + window, limit}
"""


# KEYS[1]  in-flight job counter (concurrent:{key_id})
# ARGV[1]  counter expiry in seconds, refreshed on every increment
#
# Returns the counter after the increment
INCREMENT_JOBS_SCRIPT = """
local current = redis.call('INCR', KEYS[1])
redis.call('EXPIRE', KEYS[1], tonumber(ARGV[1]))
return current
"""

# KEYS[1]  in-flight job counter (concurrent:{key_id})
#
# Returns the counter after the decrement; a counter reaching zero is deleted
DECREMENT_JOBS_SCRIPT = """
local current = redis.call('DECR', KEYS[1])
if current <= 0 then
    redis.call('DEL', KEYS[1])
    return 0
end
return current
"""
